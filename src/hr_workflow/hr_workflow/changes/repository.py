from __future__ import annotations

from datetime import date, datetime
from typing import Any, Collection, Iterator, Mapping, Optional, Protocol, Sequence

from ..core.enums import ChangeStatus
from .model import ChangeRequest, ChangeRequestFilters, NewChangeRequest, Page
from .proposals import Proposal


class TransactionManager(Protocol):
    def atomic(self) -> Iterator[None]:
        """Context manager: everything inside commits or rolls back together."""

        raise NotImplementedError


class ChangeRequestRepository(Protocol):
    """Change request persistence.

    Every read excludes soft-deleted rows unless ``include_deleted`` is set.
    Every ``mark_*`` write is a compare-and-set on the current status and
    returns False when no row matched.
    """

    def create(self, draft: NewChangeRequest) -> ChangeRequest:
        raise NotImplementedError

    def get_by_id(
        self, request_id: int, *, include_deleted: bool = False, for_update: bool = False
    ) -> Optional[ChangeRequest]:
        """``for_update`` locks the row and reads its latest committed version."""

        raise NotImplementedError

    def list_by_status(
        self,
        status: ChangeStatus,
        *,
        tenant_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[ChangeRequest]:
        """Oldest request first."""

        raise NotImplementedError

    def list_by_subject(
        self,
        subject_id: int,
        *,
        status: Optional[ChangeStatus] = None,
    ) -> Sequence[ChangeRequest]:
        """Latest effective date first."""

        raise NotImplementedError

    def list_by_tenant(
        self,
        *,
        tenant_ids: Optional[Collection[int]],
        filters: ChangeRequestFilters,
        page: int,
        limit: int,
    ) -> Page:
        """``tenant_ids=None`` means no tenant restriction."""

        raise NotImplementedError

    def list_due(self, *, today: date, tenant_id: Optional[int] = None) -> Sequence[ChangeRequest]:
        raise NotImplementedError

    def update_pending(
        self,
        request_id: int,
        *,
        effective_date: date,
        proposal: Proposal,
        proposed_names: Mapping[str, Any],
        reason: Optional[str],
        notes: Optional[str],
        updated_at: datetime,
    ) -> bool:
        raise NotImplementedError

    def mark_approved(self, request_id: int, *, approved_by: int, approved_at: datetime, notes: Optional[str]) -> bool:
        raise NotImplementedError

    def mark_rejected(self, request_id: int, *, rejected_by: int, rejected_at: datetime, reason: str) -> bool:
        raise NotImplementedError

    def mark_cancelled(self, request_id: int, *, cancelled_by: int, cancelled_at: datetime) -> bool:
        raise NotImplementedError

    def mark_applied(self, request_id: int, *, applied_at: datetime) -> bool:
        """Guarded by ``status='approved' AND is_applied=0``."""

        raise NotImplementedError

    def soft_delete(self, request_id: int, *, deleted_at: datetime) -> bool:
        """Pending requests only."""

        raise NotImplementedError

    def statistics(self, *, tenant_ids: Optional[Collection[int]]) -> dict:
        raise NotImplementedError
