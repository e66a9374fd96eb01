from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ..core.enums import AuditAction


@dataclass(frozen=True)
class AuditEvent:
    actor_id: int
    action: AuditAction
    request_id: int
    tenant_id: int
    timestamp: datetime
    before: Optional[Mapping[str, Any]] = None
    after: Optional[Mapping[str, Any]] = None
