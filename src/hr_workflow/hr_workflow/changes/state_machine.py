from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from ..audit.model import AuditEvent
from ..audit.sink import AuditSink
from ..common.datetime_utils import as_date, now_local
from ..common.validators import optional_text, require_non_empty
from ..core.enums import AuditAction, ChangeStatus
from ..core.exceptions import AuthorizationError, InvalidTransition, NotFound, ValidationError
from .conflicts import ConflictDetector
from .model import APPROVER_ROLES, Actor, ChangeRequest
from .repository import ChangeRequestRepository, TransactionManager
from .snapshot import SnapshotEngine

logger = logging.getLogger(__name__)

# The only edges of the request lifecycle. Everything else is terminal.
TRANSITIONS: dict[ChangeStatus, frozenset[ChangeStatus]] = {
    ChangeStatus.PENDING: frozenset({ChangeStatus.APPROVED, ChangeStatus.REJECTED, ChangeStatus.CANCELLED}),
    ChangeStatus.APPROVED: frozenset({ChangeStatus.APPLIED}),
}

UPDATABLE_FIELDS = frozenset({"effective_date", "proposed_state", "reason", "notes"})


def can_transition(current: ChangeStatus, target: ChangeStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(request: ChangeRequest, target: ChangeStatus) -> None:
    if not can_transition(request.status, target):
        raise InvalidTransition(request.id, request.status.value, target.value)


class RequestLoader:
    """Tenant-scoped lookups shared by the workflow components."""

    def __init__(self, requests: ChangeRequestRepository):
        self._requests = requests

    def load(self, request_id: int, actor: Actor) -> ChangeRequest:
        request = self._requests.get_by_id(int(request_id))
        # Requests of other tenants look exactly like missing ones.
        if request is None or not actor.can_access(request.tenant_id):
            raise NotFound("Change request", request_id)
        return request

    def lost_race(self, request_id: int, target: ChangeStatus) -> InvalidTransition:
        current = self._requests.get_by_id(int(request_id), include_deleted=True, for_update=True)
        status = current.status.value if current else "missing"
        return InvalidTransition(request_id, status, target.value)


class ApprovalStateMachine:
    """Pending-state edits and the human transitions out of ``pending``.

    Each method runs the compare-and-set write and its audit entry in one
    transaction.
    """

    def __init__(
        self,
        requests: ChangeRequestRepository,
        snapshots: SnapshotEngine,
        audit: AuditSink,
        transactions: TransactionManager,
        *,
        conflicts: Optional[ConflictDetector] = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self._requests = requests
        self._snapshots = snapshots
        self._audit = audit
        self._tx = transactions
        self._conflicts = conflicts or ConflictDetector(requests)
        self._clock = clock
        self._loader = RequestLoader(requests)

    @staticmethod
    def _require_approver(actor: Actor) -> None:
        if actor.role not in APPROVER_ROLES:
            raise AuthorizationError("Only HR or admin users can decide change requests")

    def _record(self, actor: Actor, action: AuditAction, before: ChangeRequest, after: ChangeRequest, at: datetime) -> None:
        self._audit.record(
            AuditEvent(
                actor_id=actor.actor_id,
                action=action,
                request_id=before.id,
                tenant_id=before.tenant_id,
                timestamp=at,
                before=before.to_dict(),
                after=after.to_dict(),
            )
        )

    def _reload(self, request_id: int) -> ChangeRequest:
        request = self._requests.get_by_id(int(request_id), include_deleted=True)
        if request is None:
            raise NotFound("Change request", request_id)
        return request

    def approve(
        self,
        request_id: int,
        approver: Actor,
        notes: Optional[str] = None,
        *,
        check_conflicts: bool = False,
    ) -> ChangeRequest:
        self._require_approver(approver)
        with self._tx.atomic():
            current = self._loader.load(request_id, approver)
            ensure_transition(current, ChangeStatus.APPROVED)
            if check_conflicts:
                self._conflicts.ensure_none(current)

            now = self._clock()
            if not self._requests.mark_approved(
                current.id, approved_by=approver.actor_id, approved_at=now, notes=optional_text(notes, "approval_notes")
            ):
                raise self._loader.lost_race(current.id, ChangeStatus.APPROVED)
            updated = self._reload(current.id)
            self._record(approver, AuditAction.APPROVE, current, updated, now)

        logger.info("change request approved id=%s approver=%s", updated.id, approver.actor_id)
        return updated

    def reject(self, request_id: int, approver: Actor, reason: Optional[str]) -> ChangeRequest:
        self._require_approver(approver)
        reason = require_non_empty(reason, "Rejection reason")
        with self._tx.atomic():
            current = self._loader.load(request_id, approver)
            ensure_transition(current, ChangeStatus.REJECTED)

            now = self._clock()
            if not self._requests.mark_rejected(
                current.id, rejected_by=approver.actor_id, rejected_at=now, reason=reason
            ):
                raise self._loader.lost_race(current.id, ChangeStatus.REJECTED)
            updated = self._reload(current.id)
            self._record(approver, AuditAction.REJECT, current, updated, now)

        logger.info("change request rejected id=%s approver=%s", updated.id, approver.actor_id)
        return updated

    def cancel(self, request_id: int, requester: Actor) -> ChangeRequest:
        with self._tx.atomic():
            current = self._loader.load(request_id, requester)
            if requester.actor_id != current.requested_by and not requester.is_admin:
                raise AuthorizationError("Only the requester or an admin can cancel a change request")
            ensure_transition(current, ChangeStatus.CANCELLED)

            now = self._clock()
            if not self._requests.mark_cancelled(current.id, cancelled_by=requester.actor_id, cancelled_at=now):
                raise self._loader.lost_race(current.id, ChangeStatus.CANCELLED)
            updated = self._reload(current.id)
            self._record(requester, AuditAction.CANCEL, current, updated, now)

        logger.info("change request cancelled id=%s by=%s", updated.id, requester.actor_id)
        return updated

    def update(self, request_id: int, patch: Mapping[str, Any], actor: Actor) -> ChangeRequest:
        """Edit a pending request.

        ``previous_state`` and ``computed_deltas`` stay as captured at creation;
        only the names of newly referenced entities are resolved again.
        """
        forbidden = sorted(set(patch) - UPDATABLE_FIELDS)
        if forbidden:
            raise ValidationError(f"Fields cannot be updated: {', '.join(forbidden)}")

        with self._tx.atomic():
            current = self._loader.load(request_id, actor)
            if actor.actor_id != current.requested_by and actor.role not in APPROVER_ROLES:
                raise AuthorizationError("Only the requester or HR can edit a change request")
            if current.status != ChangeStatus.PENDING:
                raise InvalidTransition(current.id, current.status.value, ChangeStatus.PENDING.value)

            proposal = current.proposal
            proposed_names = dict(current.proposed_names)
            if "proposed_state" in patch:
                if not isinstance(patch["proposed_state"], Mapping):
                    raise ValidationError("proposed_state must be an object")
                proposal = proposal.merge(patch["proposed_state"])
                proposed_names = self._snapshots.resolve_names(proposal)

            effective_date = current.effective_date
            if "effective_date" in patch:
                effective_date = as_date(patch["effective_date"])

            reason = optional_text(patch["reason"], "reason") if "reason" in patch else current.reason
            notes = optional_text(patch["notes"], "notes") if "notes" in patch else current.notes

            now = self._clock()
            if not self._requests.update_pending(
                current.id,
                effective_date=effective_date,
                proposal=proposal,
                proposed_names=proposed_names,
                reason=reason,
                notes=notes,
                updated_at=now,
            ):
                raise self._loader.lost_race(current.id, ChangeStatus.PENDING)
            updated = self._reload(current.id)
            self._record(actor, AuditAction.UPDATE, current, updated, now)

        logger.info("change request updated id=%s by=%s", updated.id, actor.actor_id)
        return updated

    def delete(self, request_id: int, actor: Actor) -> None:
        """Soft delete; only pending requests can be removed."""
        with self._tx.atomic():
            current = self._loader.load(request_id, actor)
            if actor.actor_id != current.requested_by and not actor.is_admin:
                raise AuthorizationError("Only the requester or an admin can delete a change request")
            if current.status != ChangeStatus.PENDING:
                raise InvalidTransition(current.id, current.status.value, "deleted")

            now = self._clock()
            if not self._requests.soft_delete(current.id, deleted_at=now):
                raise self._loader.lost_race(current.id, ChangeStatus.PENDING)
            updated = self._reload(current.id)
            self._record(actor, AuditAction.DELETE, current, updated, now)

        logger.info("change request deleted id=%s by=%s", current.id, actor.actor_id)
