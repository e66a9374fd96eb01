from __future__ import annotations

from typing import Protocol, Sequence

from .model import AuditEvent


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        """Persist one immutable entry; raising aborts the enclosing transition."""

        raise NotImplementedError

    def list_for_request(self, request_id: int) -> Sequence[AuditEvent]:
        raise NotImplementedError
