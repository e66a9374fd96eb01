from __future__ import annotations

from decimal import Decimal

import pytest

from src.hr_workflow.hr_workflow.changes.model import Actor, ChangeRequestFilters
from src.hr_workflow.hr_workflow.core.enums import AuditAction, ChangeKind, ChangeStatus, Role
from src.hr_workflow.hr_workflow.core.exceptions import NotFound, SubjectNotFound, ValidationError


def test_create_stores_pending_request_with_snapshot(world, staff, promotion):
    assert promotion.status == ChangeStatus.PENDING
    assert promotion.tenant_id == 1
    assert promotion.requested_by == staff.actor_id
    assert promotion.requested_at == world.clock.now
    assert promotion.reason == "Annual review"
    assert promotion.previous_state["basic_salary"] == Decimal("10000000")
    assert world.audit.events[0].action == AuditAction.CREATE
    assert world.audit.events[0].before is None


def test_create_for_unknown_subject(world, staff):
    with pytest.raises(SubjectNotFound):
        world.service.create(
            actor=staff,
            subject_id=404,
            change_kind="transfer",
            effective_date="2026-04-01",
            proposed_state={"department_id": 3},
        )
    assert world.repo.rows == {}


def test_create_for_subject_of_other_tenant_looks_missing(world, staff):
    with pytest.raises(SubjectNotFound):
        world.service.create(
            actor=staff,
            subject_id=2,
            change_kind="transfer",
            effective_date="2026-04-01",
            proposed_state={"department_id": 3},
        )


def test_explicit_tenant_cannot_claim_foreign_subject(world, hr):
    with pytest.raises(SubjectNotFound):
        world.service.create(
            actor=hr,
            subject_id=2,
            tenant_id=1,
            change_kind="salary_adjustment",
            effective_date="2026-03-01",
            proposed_state={"basic_salary": "99000000"},
        )

    assert world.repo.rows == {}
    assert world.audit.events == []
    assert world.reference.resolve_subject(2).fields["basic_salary"] == Decimal("10000000")


def test_explicit_tenant_must_match_subject(world, admin):
    with pytest.raises(ValidationError):
        world.service.create(
            actor=admin,
            subject_id=2,
            tenant_id=1,
            change_kind="transfer",
            effective_date="2026-04-01",
            proposed_state={"department_id": 3},
        )

    created = world.service.create(
        actor=admin,
        subject_id=2,
        tenant_id=2,
        change_kind="transfer",
        effective_date="2026-04-01",
        proposed_state={"department_id": 3},
    )
    assert created.tenant_id == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"change_kind": "teleport"},
        {"effective_date": None},
        {"effective_date": "01/04/2026"},
        {"proposed_state": None},
        {"subject_id": None},
    ],
)
def test_create_validates_input(world, staff, overrides):
    kwargs = dict(
        actor=staff,
        subject_id=1,
        change_kind="transfer",
        effective_date="2026-04-01",
        proposed_state={"department_id": 3},
    )
    kwargs.update(overrides)

    with pytest.raises(ValidationError):
        world.service.create(**kwargs)


def test_zero_salary_yields_null_percentage(world, staff):
    created = world.service.create(
        actor=staff,
        subject_id=3,
        change_kind="salary_adjustment",
        effective_date="2026-04-01",
        proposed_state={"basic_salary": "5000000"},
    )

    assert created.computed_deltas["salary_delta"] == Decimal("5000000")
    assert created.computed_deltas["salary_delta_pct"] is None


def test_get_hides_other_tenants(world, promotion):
    outsider = Actor(actor_id=99, role=Role.HR, accessible_tenant_ids=frozenset({2}))

    with pytest.raises(NotFound):
        world.service.get(promotion.id, outsider)


def test_list_for_foreign_tenant_is_empty_not_an_error(world, hr, promotion):
    page = world.service.list_requests(hr, ChangeRequestFilters(tenant_id=2))

    assert page.data == []
    assert page.total == 0


def test_list_paginates_with_consistent_totals(world, staff, hr):
    for month in range(4, 9):
        world.service.create(
            actor=staff,
            subject_id=1,
            change_kind="allowance",
            effective_date=f"2026-{month:02d}-01",
            proposed_state={"allowance_type": "meal", "amount": 100000 * month},
        )

    first = world.service.list_requests(hr, ChangeRequestFilters())
    last = world.service.list_requests(hr, ChangeRequestFilters(), page=3)
    capped = world.service.list_requests(hr, ChangeRequestFilters(), limit=500)

    assert first.limit == 2
    assert first.total == 5
    assert first.total_pages == 3
    assert len(first.data) == 2
    assert len(last.data) == 1
    assert capped.limit == 5
    assert first.to_dict()["pagination"] == {"page": 1, "limit": 2, "total": 5, "totalPages": 3}


def test_list_filters_by_kind_and_status(world, staff, hr, promotion):
    world.service.create(
        actor=staff,
        subject_id=1,
        change_kind="status_change",
        effective_date="2026-04-01",
        proposed_state={"employment_status": "probation"},
    )
    world.machine.approve(promotion.id, hr)

    approved = world.service.list_requests(hr, ChangeRequestFilters(status=ChangeStatus.APPROVED))
    status_changes = world.service.list_requests(hr, ChangeRequestFilters(change_kind=ChangeKind.STATUS_CHANGE))

    assert [r.id for r in approved.data] == [promotion.id]
    assert [r.change_kind for r in status_changes.data] == [ChangeKind.STATUS_CHANGE]


def test_pending_approvals_are_oldest_first(world, staff, hr, promotion):
    world.clock.advance(days=1)
    newer = world.service.create(
        actor=staff,
        subject_id=1,
        change_kind="transfer",
        effective_date="2026-04-01",
        proposed_state={"department_id": 3},
    )

    assert [r.id for r in world.service.list_pending_approvals(hr)] == [promotion.id, newer.id]
    assert world.service.list_pending_approvals(hr, tenant_id=2) == []


def test_bulk_create_reports_each_subject(world, admin):
    result = world.service.bulk_create(
        actor=admin,
        subject_ids=[1, 2, 404],
        change_kind="payroll_adjustment",
        effective_date="2026-04-01",
        proposed_state={"adjustment_type": "bonus", "amount": "1000000", "pay_period": "2026-04"},
    )

    assert result["created"] == 2
    assert result["failed"] == 1
    assert len(result["ids"]) == 2
    assert "404" in result["errors"][0]


def test_bulk_create_is_limited_to_compensation_kinds(world, admin):
    with pytest.raises(ValidationError):
        world.service.bulk_create(
            actor=admin,
            subject_ids=[1],
            change_kind="promotion",
            effective_date="2026-04-01",
            proposed_state={"position_id": 3},
        )


def test_find_conflicts_ignores_disjoint_fields(world, staff, promotion):
    transfer = world.service.create(
        actor=staff,
        subject_id=1,
        change_kind="department_change",
        effective_date="2026-04-01",
        proposed_state={"department_id": 3},
    )
    raise_salary = world.service.create(
        actor=staff,
        subject_id=1,
        change_kind="salary_adjustment",
        effective_date="2026-04-01",
        proposed_state={"basic_salary": "15000000"},
    )

    assert world.service.find_conflicts(transfer.id, staff) == []
    assert [r.id for r in world.service.find_conflicts(raise_salary.id, staff)] == [promotion.id]


def test_statistics_are_tenant_scoped(world, staff, admin, promotion):
    world.service.create(
        actor=admin,
        subject_id=2,
        change_kind="salary_adjustment",
        effective_date="2026-04-01",
        proposed_state={"basic_salary": "15000000"},
    )

    own = world.service.statistics(staff)
    everything = world.service.statistics(admin)

    assert own["total"] == 1
    assert own["by_kind"] == {"promotion": 1}
    assert own["avg_salary_delta_pct"] == Decimal("20")
    assert everything["total"] == 2
    assert everything["by_status"] == {"pending": 2}


def test_audit_trail_lists_every_transition(world, staff, hr, promotion):
    world.machine.approve(promotion.id, hr)

    trail = world.service.audit_trail(promotion.id, staff)

    assert [e.action for e in trail] == [AuditAction.CREATE, AuditAction.APPROVE]
    assert all(e.actor_id in (staff.actor_id, hr.actor_id) for e in trail)
