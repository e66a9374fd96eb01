from __future__ import annotations

from typing import Sequence

from ..core.enums import ChangeStatus
from ..core.exceptions import ConflictingChangeExists
from .model import ChangeRequest
from .repository import ChangeRequestRepository

_OPEN = (ChangeStatus.PENDING, ChangeStatus.APPROVED)


class ConflictDetector:
    """Finds other open requests on the same subject that write the same fields.

    Advisory only: callers decide whether an overlap blocks approval.
    """

    def __init__(self, requests: ChangeRequestRepository):
        self._requests = requests

    def find(self, request: ChangeRequest) -> Sequence[ChangeRequest]:
        touched = set(request.proposal.to_fields())
        out = []
        for other in self._requests.list_by_subject(request.subject_id):
            if other.id == request.id or other.status not in _OPEN or other.is_applied:
                continue
            if touched & set(other.proposal.to_fields()):
                out.append(other)
        return out

    def ensure_none(self, request: ChangeRequest) -> None:
        conflicting = self.find(request)
        if conflicting:
            raise ConflictingChangeExists(request.id, [c.id for c in conflicting])
