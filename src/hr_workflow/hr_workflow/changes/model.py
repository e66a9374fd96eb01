from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from ..core.enums import ChangeKind, ChangeStatus, Role
from ..common.json_codec import to_jsonable
from .proposals import Proposal

APPROVER_ROLES = frozenset({Role.ADMIN, Role.HR})
APPLIER_ROLES = frozenset({Role.ADMIN, Role.HR, Role.SYSTEM})


@dataclass(frozen=True)
class Actor:
    """Caller identity supplied by the authorization layer.

    ``accessible_tenant_ids=None`` means unrestricted and is reserved for the
    system actor that drives scheduled sweeps.
    """

    actor_id: int
    role: Role
    accessible_tenant_ids: Optional[frozenset[int]] = frozenset()

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_id=0, role=Role.SYSTEM, accessible_tenant_ids=None)

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SYSTEM)

    def can_access(self, tenant_id: int) -> bool:
        return self.accessible_tenant_ids is None or int(tenant_id) in self.accessible_tenant_ids


@dataclass(frozen=True)
class NewChangeRequest:
    subject_id: int
    tenant_id: int
    change_kind: ChangeKind
    effective_date: date
    proposal: Proposal
    previous_state: Mapping[str, Any]
    proposed_names: Mapping[str, Any]
    computed_deltas: Mapping[str, Any]
    requested_by: int
    requested_at: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ChangeRequest:
    id: int
    subject_id: int
    tenant_id: int
    change_kind: ChangeKind
    effective_date: date
    proposal: Proposal
    previous_state: Mapping[str, Any]
    proposed_names: Mapping[str, Any]
    computed_deltas: Mapping[str, Any]
    status: ChangeStatus
    requested_by: int
    requested_at: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    is_applied: bool = False
    applied_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in ("previous_state", "proposed_names", "computed_deltas"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def proposed_state(self) -> dict[str, Any]:
        """New values for the changed fields plus the names resolved at proposal time."""
        state = dict(self.proposal.to_fields())
        state.update(self.proposed_names)
        return state

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(
            {
                "id": self.id,
                "subject_id": self.subject_id,
                "tenant_id": self.tenant_id,
                "change_kind": self.change_kind,
                "effective_date": self.effective_date,
                "status": self.status,
                "previous_state": self.previous_state,
                "proposed_state": self.proposed_state,
                "proposal": self.proposal.to_payload(),
                "computed_deltas": self.computed_deltas,
                "reason": self.reason,
                "notes": self.notes,
                "requested_by": self.requested_by,
                "requested_at": self.requested_at,
                "approved_by": self.approved_by,
                "approved_at": self.approved_at,
                "approval_notes": self.approval_notes,
                "rejected_by": self.rejected_by,
                "rejected_at": self.rejected_at,
                "rejection_reason": self.rejection_reason,
                "cancelled_by": self.cancelled_by,
                "cancelled_at": self.cancelled_at,
                "is_applied": self.is_applied,
                "applied_at": self.applied_at,
                "deleted_at": self.deleted_at,
                "updated_at": self.updated_at,
            }
        )


@dataclass(frozen=True)
class ChangeRequestFilters:
    tenant_id: Optional[int] = None
    subject_id: Optional[int] = None
    change_kind: Optional[ChangeKind] = None
    status: Optional[ChangeStatus] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_applied: Optional[bool] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class Page:
    data: Sequence[ChangeRequest]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [r.to_dict() for r in self.data],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


@dataclass(frozen=True)
class SweepReport:
    applied: list[int] = field(default_factory=list)
    skipped: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"applied": list(self.applied), "skipped": {str(k): v for k, v in self.skipped.items()}}
