from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.hr_workflow.hr_workflow.changes.applier import Applier
from src.hr_workflow.hr_workflow.changes.model import Actor, ChangeRequest, Page
from src.hr_workflow.hr_workflow.changes.service import ChangeRequestService
from src.hr_workflow.hr_workflow.changes.snapshot import REFERENCE_FIELDS, SnapshotEngine
from src.hr_workflow.hr_workflow.changes.state_machine import ApprovalStateMachine
from src.hr_workflow.hr_workflow.core.enums import ChangeStatus, ReferenceKind, Role
from src.hr_workflow.hr_workflow.reference.model import SubjectRecord


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int) -> None:
        self.now = self.now + timedelta(days=days)


class FakeReferenceStore:
    def __init__(self):
        self.subjects: dict[int, SubjectRecord] = {}
        self.entities: dict[tuple[ReferenceKind, object], str] = {}
        self.apply_calls: list[tuple[int, dict]] = []

    def add_subject(self, subject: SubjectRecord) -> None:
        self.subjects[subject.subject_id] = subject

    def resolve_subject(self, subject_id):
        return self.subjects.get(int(subject_id))

    def resolve_reference_entity(self, kind, entity_id):
        return self.entities.get((kind, entity_id))

    def apply_changes(self, subject_id, changes):
        self.apply_calls.append((int(subject_id), dict(changes)))
        subject = self.subjects[int(subject_id)]
        fields = dict(subject.fields)
        fields.update(changes)
        names = dict(subject.display_names)
        for key, value in changes.items():
            if key in REFERENCE_FIELDS:
                kind, name_key = REFERENCE_FIELDS[key]
                names[name_key] = self.entities.get((kind, value))
        updated = replace(subject, fields=fields, display_names=names)
        self.subjects[updated.subject_id] = updated
        return updated


class FakeChangeRequestRepo:
    def __init__(self):
        self.rows: dict[int, ChangeRequest] = {}
        self._next_id = 1

    def create(self, draft):
        rid = self._next_id
        self._next_id += 1
        self.rows[rid] = ChangeRequest(
            id=rid,
            subject_id=draft.subject_id,
            tenant_id=draft.tenant_id,
            change_kind=draft.change_kind,
            effective_date=draft.effective_date,
            proposal=draft.proposal,
            previous_state=draft.previous_state,
            proposed_names=draft.proposed_names,
            computed_deltas=draft.computed_deltas,
            status=ChangeStatus.PENDING,
            requested_by=draft.requested_by,
            requested_at=draft.requested_at,
            reason=draft.reason,
            notes=draft.notes,
        )
        return self.rows[rid]

    def get_by_id(self, request_id, *, include_deleted=False, for_update=False):
        row = self.rows.get(int(request_id))
        if row is None or (row.is_deleted and not include_deleted):
            return None
        return row

    def _active(self):
        return [r for r in self.rows.values() if not r.is_deleted]

    def list_by_status(self, status, *, tenant_id=None, limit=200):
        rows = [r for r in self._active() if r.status == status]
        if tenant_id is not None:
            rows = [r for r in rows if r.tenant_id == int(tenant_id)]
        return sorted(rows, key=lambda r: (r.requested_at, r.id))[:limit]

    def list_by_subject(self, subject_id, *, status=None):
        rows = [r for r in self._active() if r.subject_id == int(subject_id)]
        if status is not None:
            rows = [r for r in rows if r.status == status]
        return sorted(rows, key=lambda r: (r.effective_date, r.id), reverse=True)

    def list_by_tenant(self, *, tenant_ids, filters, page, limit):
        rows = self._active()
        if tenant_ids is not None:
            rows = [r for r in rows if r.tenant_id in tenant_ids]
        if filters.subject_id is not None:
            rows = [r for r in rows if r.subject_id == filters.subject_id]
        if filters.change_kind is not None:
            rows = [r for r in rows if r.change_kind == filters.change_kind]
        if filters.status is not None:
            rows = [r for r in rows if r.status == filters.status]
        if filters.is_applied is not None:
            rows = [r for r in rows if r.is_applied == filters.is_applied]
        rows = sorted(rows, key=lambda r: r.id, reverse=True)
        offset = (page - 1) * limit
        return Page(data=rows[offset : offset + limit], page=page, limit=limit, total=len(rows))

    def list_due(self, *, today, tenant_id=None):
        rows = [
            r
            for r in self._active()
            if r.status == ChangeStatus.APPROVED and not r.is_applied and r.effective_date <= today
        ]
        if tenant_id is not None:
            rows = [r for r in rows if r.tenant_id == int(tenant_id)]
        return sorted(rows, key=lambda r: (r.effective_date, r.id))

    def update_pending(self, request_id, *, effective_date, proposal, proposed_names, reason, notes, updated_at):
        return self._swap(
            request_id,
            ChangeStatus.PENDING,
            effective_date=effective_date,
            proposal=proposal,
            proposed_names=proposed_names,
            reason=reason,
            notes=notes,
            updated_at=updated_at,
        )

    def _swap(self, request_id, expected, **changes):
        row = self.rows.get(int(request_id))
        if row is None or row.is_deleted or row.status != expected:
            return False
        self.rows[row.id] = replace(row, **changes)
        return True

    def mark_approved(self, request_id, *, approved_by, approved_at, notes):
        return self._swap(
            request_id,
            ChangeStatus.PENDING,
            status=ChangeStatus.APPROVED,
            approved_by=approved_by,
            approved_at=approved_at,
            approval_notes=notes,
        )

    def mark_rejected(self, request_id, *, rejected_by, rejected_at, reason):
        return self._swap(
            request_id,
            ChangeStatus.PENDING,
            status=ChangeStatus.REJECTED,
            rejected_by=rejected_by,
            rejected_at=rejected_at,
            rejection_reason=reason,
        )

    def mark_cancelled(self, request_id, *, cancelled_by, cancelled_at):
        return self._swap(
            request_id,
            ChangeStatus.PENDING,
            status=ChangeStatus.CANCELLED,
            cancelled_by=cancelled_by,
            cancelled_at=cancelled_at,
        )

    def mark_applied(self, request_id, *, applied_at):
        row = self.rows.get(int(request_id))
        if row is None or row.is_applied:
            return False
        return self._swap(request_id, ChangeStatus.APPROVED, status=ChangeStatus.APPLIED, is_applied=True, applied_at=applied_at)

    def soft_delete(self, request_id, *, deleted_at):
        return self._swap(request_id, ChangeStatus.PENDING, deleted_at=deleted_at)

    def statistics(self, *, tenant_ids):
        rows = [r for r in self._active() if tenant_ids is None or r.tenant_id in tenant_ids]
        pcts = [r.computed_deltas["salary_delta_pct"] for r in rows if r.computed_deltas.get("salary_delta_pct") is not None]
        by_kind: dict[str, int] = {}
        by_status: dict[str, int] = {}
        for r in rows:
            by_kind[r.change_kind.value] = by_kind.get(r.change_kind.value, 0) + 1
            by_status[r.status.value] = by_status.get(r.status.value, 0) + 1
        return {
            "total": len(rows),
            "avg_salary_delta_pct": (sum(pcts) / len(pcts)) if pcts else None,
            "by_kind": by_kind,
            "by_status": by_status,
        }


class FakeAuditSink:
    def __init__(self):
        self.events = []
        self.fail_next = False

    def record(self, event):
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("audit store unavailable")
        self.events.append(event)

    def list_for_request(self, request_id):
        return [e for e in self.events if e.request_id == int(request_id)]


class FakeTransactions:
    """Serializes callers and restores the persisted state of every fake on error."""

    persisted = ("rows", "_next_id", "events", "subjects")

    def __init__(self, *stores):
        self._stores = stores
        self._lock = threading.RLock()
        self._depth = 0
        self.rollbacks = 0

    def _save(self, store):
        return {k: copy.copy(v) for k, v in store.__dict__.items() if k in self.persisted}

    @contextmanager
    def atomic(self):
        with self._lock:
            outer = self._depth == 0
            saved = [self._save(s) for s in self._stores] if outer else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if outer:
                    for store, state in zip(self._stores, saved):
                        store.__dict__.update(state)
                    self.rollbacks += 1
                raise
            finally:
                self._depth -= 1


def _entities() -> dict:
    return {
        (ReferenceKind.POSITION, 1): "Staff",
        (ReferenceKind.POSITION, 2): "Supervisor",
        (ReferenceKind.POSITION, 3): "Manager",
        (ReferenceKind.DEPARTMENT, 2): "Finance",
        (ReferenceKind.DEPARTMENT, 3): "Human Resources",
        (ReferenceKind.COMPANY, 1): "Head Office",
        (ReferenceKind.COMPANY, 2): "Branch Office",
        (ReferenceKind.SALARY_GRADE, "G2"): "Grade 2",
        (ReferenceKind.SALARY_GRADE, "G3"): "Grade 3",
    }


def make_subject(subject_id: int = 1, tenant_id: int = 1, **overrides) -> SubjectRecord:
    fields = {
        "position_id": 1,
        "department_id": 2,
        "company_id": tenant_id,
        "basic_salary": Decimal("10000000"),
        "grade_code": "G2",
        "employment_status": "active",
        "allowance.transport": Decimal("500000"),
    }
    fields.update(overrides)
    return SubjectRecord(
        subject_id=subject_id,
        employee_code=f"EMP{subject_id:03d}",
        name=f"Employee {subject_id}",
        tenant_id=tenant_id,
        fields=fields,
        display_names={
            "position_name": "Staff",
            "department_name": "Finance",
            "company_name": "Head Office" if tenant_id == 1 else "Branch Office",
            "grade_name": "Grade 2",
        },
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0, 0))


@pytest.fixture
def world(clock):
    reference = FakeReferenceStore()
    reference.entities.update(_entities())
    reference.add_subject(make_subject(1, tenant_id=1))
    reference.add_subject(make_subject(2, tenant_id=2))
    reference.add_subject(make_subject(3, tenant_id=1, basic_salary=Decimal("0")))

    repo = FakeChangeRequestRepo()
    audit = FakeAuditSink()
    tx = FakeTransactions(repo, audit, reference)
    snapshots = SnapshotEngine(reference)

    return SimpleNamespace(
        clock=clock,
        reference=reference,
        repo=repo,
        audit=audit,
        tx=tx,
        snapshots=snapshots,
        service=ChangeRequestService(repo, snapshots, audit, tx, clock=clock, default_page_size=2, max_page_size=5),
        machine=ApprovalStateMachine(repo, snapshots, audit, tx, clock=clock),
        applier=Applier(repo, reference, audit, tx, clock=clock),
    )


@pytest.fixture
def staff():
    return Actor(actor_id=10, role=Role.STAFF, accessible_tenant_ids=frozenset({1}))


@pytest.fixture
def hr():
    return Actor(actor_id=20, role=Role.HR, accessible_tenant_ids=frozenset({1}))


@pytest.fixture
def admin():
    return Actor(actor_id=30, role=Role.ADMIN, accessible_tenant_ids=frozenset({1, 2}))


@pytest.fixture
def promotion(world, staff):
    """Pending promotion of subject 1: Staff -> Manager, 10M -> 12M, effective 2026-03-15."""
    return world.service.create(
        actor=staff,
        subject_id=1,
        change_kind="promotion",
        effective_date="2026-03-15",
        proposed_state={"position_id": 3, "basic_salary": "12000000"},
        reason="Annual review",
    )
