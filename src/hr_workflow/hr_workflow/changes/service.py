from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..audit.model import AuditEvent
from ..audit.sink import AuditSink
from ..common.datetime_utils import as_date, now_local
from ..common.validators import optional_text, require_positive_int
from ..core.constants import DEFAULT_LIST_LIMIT, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.enums import AuditAction, ChangeKind, ChangeStatus
from ..core.exceptions import DomainError, SubjectNotFound, ValidationError
from .conflicts import ConflictDetector
from .model import Actor, ChangeRequest, ChangeRequestFilters, NewChangeRequest, Page
from .proposals import parse_proposal
from .repository import ChangeRequestRepository, TransactionManager
from .snapshot import SnapshotEngine
from .state_machine import RequestLoader

logger = logging.getLogger(__name__)

BULK_KINDS = frozenset({ChangeKind.PAYROLL_ADJUSTMENT, ChangeKind.ALLOWANCE})


def parse_change_kind(value: object) -> ChangeKind:
    try:
        return ChangeKind(value)
    except ValueError:
        raise ValidationError(f"Invalid change_kind: {value!r}")


def tenant_scope(actor: Actor, tenant_id: Optional[int]) -> Optional[set[int]]:
    """Tenants a read may touch; None means unrestricted.

    A tenant outside the accessible set yields an empty scope, never an error.
    """
    if actor.accessible_tenant_ids is None:
        return {int(tenant_id)} if tenant_id is not None else None
    if tenant_id is not None:
        return {int(tenant_id)} & set(actor.accessible_tenant_ids)
    return set(actor.accessible_tenant_ids)


class ChangeRequestService:
    """Creation and scoped reads of change requests."""

    def __init__(
        self,
        requests: ChangeRequestRepository,
        snapshots: SnapshotEngine,
        audit: AuditSink,
        transactions: TransactionManager,
        *,
        conflicts: Optional[ConflictDetector] = None,
        clock: Callable[[], datetime] = now_local,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self._requests = requests
        self._snapshots = snapshots
        self._audit = audit
        self._tx = transactions
        self._conflicts = conflicts or ConflictDetector(requests)
        self._clock = clock
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._loader = RequestLoader(requests)

    def create(
        self,
        *,
        actor: Actor,
        subject_id: int,
        change_kind: object,
        effective_date: object,
        proposed_state: Optional[Mapping[str, Any]],
        tenant_id: Optional[int] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ChangeRequest:
        kind = parse_change_kind(change_kind)
        subject_id = require_positive_int(subject_id, "subject_id")
        if effective_date in (None, ""):
            raise ValidationError("effective_date is required")
        effective = as_date(effective_date)
        proposal = parse_proposal(kind, proposed_state)

        snapshot = self._snapshots.capture(subject_id, proposal)
        owner = snapshot.subject.tenant_id
        if not actor.can_access(owner):
            raise SubjectNotFound(subject_id)
        if tenant_id not in (None, "") and require_positive_int(tenant_id, "tenant_id") != owner:
            raise ValidationError(f"Subject {subject_id} does not belong to tenant {tenant_id}")

        now = self._clock()
        draft = NewChangeRequest(
            subject_id=snapshot.subject.subject_id,
            tenant_id=owner,
            change_kind=kind,
            effective_date=effective,
            proposal=proposal,
            previous_state=snapshot.previous_state,
            proposed_names=snapshot.proposed_names,
            computed_deltas=snapshot.computed_deltas,
            requested_by=actor.actor_id,
            requested_at=now,
            reason=optional_text(reason, "reason"),
            notes=optional_text(notes, "notes"),
        )

        with self._tx.atomic():
            created = self._requests.create(draft)
            self._audit.record(
                AuditEvent(
                    actor_id=actor.actor_id,
                    action=AuditAction.CREATE,
                    request_id=created.id,
                    tenant_id=created.tenant_id,
                    timestamp=now,
                    after=created.to_dict(),
                )
            )

        logger.info(
            "change request created id=%s kind=%s subject_id=%s by=%s",
            created.id,
            kind.value,
            created.subject_id,
            actor.actor_id,
        )
        return created

    def bulk_create(
        self,
        *,
        actor: Actor,
        subject_ids: Iterable[int],
        change_kind: object,
        effective_date: object,
        proposed_state: Optional[Mapping[str, Any]],
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict:
        kind = parse_change_kind(change_kind)
        if kind not in BULK_KINDS:
            raise ValidationError(f"Bulk creation is not available for {kind.value}")

        result: dict[str, Any] = {"created": 0, "failed": 0, "ids": [], "errors": []}
        for subject_id in subject_ids:
            try:
                created = self.create(
                    actor=actor,
                    subject_id=subject_id,
                    change_kind=kind,
                    effective_date=effective_date,
                    proposed_state=proposed_state,
                    reason=reason,
                    notes=notes,
                )
            except DomainError as e:
                result["failed"] += 1
                result["errors"].append(f"Subject {subject_id}: {e}")
            else:
                result["created"] += 1
                result["ids"].append(created.id)
        return result

    def get(self, request_id: int, actor: Actor) -> ChangeRequest:
        return self._loader.load(request_id, actor)

    def list_requests(
        self,
        actor: Actor,
        filters: ChangeRequestFilters,
        *,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Page:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or self._default_page_size), 1), self._max_page_size)

        tenant_ids = tenant_scope(actor, filters.tenant_id)
        return self._requests.list_by_tenant(tenant_ids=tenant_ids, filters=filters, page=page, limit=limit)

    def list_by_subject(
        self,
        subject_id: int,
        actor: Actor,
        *,
        status: Optional[ChangeStatus] = None,
    ) -> Sequence[ChangeRequest]:
        rows = self._requests.list_by_subject(int(subject_id), status=status)
        return [r for r in rows if actor.can_access(r.tenant_id)]

    def list_pending_approvals(self, actor: Actor, tenant_id: Optional[int] = None) -> Sequence[ChangeRequest]:
        if tenant_id is not None and not actor.can_access(tenant_id):
            return []
        rows = self._requests.list_by_status(ChangeStatus.PENDING, tenant_id=tenant_id, limit=DEFAULT_LIST_LIMIT)
        return [r for r in rows if actor.can_access(r.tenant_id)]

    def find_conflicts(self, request_id: int, actor: Actor) -> Sequence[ChangeRequest]:
        request = self._loader.load(request_id, actor)
        return [r for r in self._conflicts.find(request) if actor.can_access(r.tenant_id)]

    def statistics(self, actor: Actor, tenant_id: Optional[int] = None) -> dict:
        return self._requests.statistics(tenant_ids=tenant_scope(actor, tenant_id))

    def audit_trail(self, request_id: int, actor: Actor) -> Sequence[AuditEvent]:
        request = self._loader.load(request_id, actor)
        return self._audit.list_for_request(request.id)

