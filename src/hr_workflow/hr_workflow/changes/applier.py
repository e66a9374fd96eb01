from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..audit.model import AuditEvent
from ..audit.sink import AuditSink
from ..common.datetime_utils import now_local
from ..common.json_codec import to_jsonable
from ..core.enums import AuditAction, ChangeStatus
from ..core.exceptions import AlreadyApplied, AuthorizationError, DomainError, NotFound, NotYetEffective
from ..reference.repository import ReferenceStore
from .model import APPLIER_ROLES, Actor, ChangeRequest, SweepReport
from .repository import ChangeRequestRepository, TransactionManager
from .state_machine import RequestLoader, ensure_transition

logger = logging.getLogger(__name__)


class Applier:
    """Writes approved, due requests onto their subjects exactly once.

    Holds no timers; a scheduler or an on-demand call drives ``apply_due``.
    """

    def __init__(
        self,
        requests: ChangeRequestRepository,
        reference: ReferenceStore,
        audit: AuditSink,
        transactions: TransactionManager,
        *,
        clock: Callable[[], datetime] = now_local,
    ):
        self._requests = requests
        self._reference = reference
        self._audit = audit
        self._tx = transactions
        self._clock = clock
        self._loader = RequestLoader(requests)

    def list_due_for_application(self, tenant_id: Optional[int] = None) -> Sequence[ChangeRequest]:
        return self._requests.list_due(today=self._clock().date(), tenant_id=tenant_id)

    def apply(self, request_id: int, actor: Actor) -> ChangeRequest:
        if actor.role not in APPLIER_ROLES:
            raise AuthorizationError("Only HR, admin or the scheduler can apply change requests")

        with self._tx.atomic():
            current = self._loader.load(request_id, actor)
            if current.is_applied:
                raise AlreadyApplied(current.id)
            ensure_transition(current, ChangeStatus.APPLIED)

            now = self._clock()
            if current.effective_date > now.date():
                raise NotYetEffective(current.id, current.effective_date)

            # The guarded write decides the winner between overlapping callers.
            if not self._requests.mark_applied(current.id, applied_at=now):
                raise AlreadyApplied(current.id)

            subject = self._reference.apply_changes(current.subject_id, current.proposal.to_fields())
            updated = self._requests.get_by_id(current.id)
            if updated is None:
                raise NotFound("Change request", current.id)

            self._audit.record(
                AuditEvent(
                    actor_id=actor.actor_id,
                    action=AuditAction.APPLY,
                    request_id=current.id,
                    tenant_id=current.tenant_id,
                    timestamp=now,
                    before=current.to_dict(),
                    after={
                        "request": updated.to_dict(),
                        "subject": to_jsonable(dict(subject.fields)),
                    },
                )
            )

        logger.info(
            "change request applied id=%s subject_id=%s by=%s",
            updated.id,
            updated.subject_id,
            actor.actor_id,
        )
        return updated

    def apply_due(self, actor: Actor, tenant_id: Optional[int] = None) -> SweepReport:
        """Apply every due request, oldest effective date first.

        Requests are processed one at a time; a failure is recorded and the
        sweep moves on.
        """
        report = SweepReport()
        for request in self.list_due_for_application(tenant_id):
            if not actor.can_access(request.tenant_id):
                continue
            try:
                self.apply(request.id, actor)
            except DomainError as e:
                logger.warning("change request skipped id=%s reason=%s", request.id, e.code)
                report.skipped[request.id] = e.code
            else:
                report.applied.append(request.id)

        logger.info("due sweep finished tenant_id=%s applied=%s skipped=%s", tenant_id, len(report.applied), len(report.skipped))
        return report
