from __future__ import annotations

from datetime import date, datetime
from typing import Any, Collection, Mapping, Optional, Sequence

from ..common.json_codec import dump_json, load_json, load_state
from ..core.enums import ChangeKind, ChangeStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import ChangeRequest, ChangeRequestFilters, NewChangeRequest, Page
from .proposals import Proposal, parse_proposal
from .repository import ChangeRequestRepository

_COLUMNS = """
    id, subject_id, tenant_id, change_kind, effective_date,
    proposal, proposed_names, previous_state, computed_deltas,
    reason, notes, status, requested_by, requested_at,
    approved_by, approved_at, approval_notes,
    rejected_by, rejected_at, rejection_reason,
    cancelled_by, cancelled_at, is_applied, applied_at, deleted_at, updated_at
"""

_ACTIVE = "deleted_at IS NULL"


def _opt_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _to_request(r: Mapping[str, Any]) -> ChangeRequest:
    kind = ChangeKind(r["change_kind"])
    return ChangeRequest(
        id=int(r["id"]),
        subject_id=int(r["subject_id"]),
        tenant_id=int(r["tenant_id"]),
        change_kind=kind,
        effective_date=r["effective_date"],
        proposal=parse_proposal(kind, load_json(r["proposal"])),
        previous_state=load_state(r["previous_state"]),
        proposed_names=load_json(r.get("proposed_names")),
        computed_deltas=load_state(r.get("computed_deltas")),
        status=ChangeStatus(r["status"]),
        requested_by=int(r["requested_by"]),
        requested_at=r["requested_at"],
        reason=r.get("reason"),
        notes=r.get("notes"),
        approved_by=_opt_int(r.get("approved_by")),
        approved_at=r.get("approved_at"),
        approval_notes=r.get("approval_notes"),
        rejected_by=_opt_int(r.get("rejected_by")),
        rejected_at=r.get("rejected_at"),
        rejection_reason=r.get("rejection_reason"),
        cancelled_by=_opt_int(r.get("cancelled_by")),
        cancelled_at=r.get("cancelled_at"),
        is_applied=bool(r.get("is_applied")),
        applied_at=r.get("applied_at"),
        deleted_at=r.get("deleted_at"),
        updated_at=r.get("updated_at"),
    )


def _in_clause(column: str, values: Collection[int]) -> tuple[str, list[object]]:
    placeholders = ",".join(["%s"] * len(values))
    return f"{column} IN ({placeholders})", [int(v) for v in values]


class MySQLChangeRequestRepository(ChangeRequestRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, draft: NewChangeRequest) -> ChangeRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO change_requests(
                    subject_id, tenant_id, change_kind, effective_date,
                    proposal, proposed_names, previous_state, computed_deltas, salary_delta_pct,
                    reason, notes, status, requested_by, requested_at, is_applied
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,0)
                """,
                (
                    int(draft.subject_id),
                    int(draft.tenant_id),
                    draft.change_kind.value,
                    draft.effective_date,
                    dump_json(draft.proposal.to_payload()),
                    dump_json(draft.proposed_names),
                    dump_json(draft.previous_state),
                    dump_json(draft.computed_deltas),
                    draft.computed_deltas.get("salary_delta_pct"),
                    draft.reason,
                    draft.notes,
                    ChangeStatus.PENDING.value,
                    int(draft.requested_by),
                    draft.requested_at,
                ),
            )
            request_id = int(cur.lastrowid)
            cur.execute(f"SELECT {_COLUMNS} FROM change_requests WHERE id=%s", (request_id,))
            return _to_request(fetchone(cur))

    def get_by_id(self, request_id: int, *, include_deleted: bool = False, for_update: bool = False) -> Optional[ChangeRequest]:
        sql = f"SELECT {_COLUMNS} FROM change_requests WHERE id=%s"
        if not include_deleted:
            sql += f" AND {_ACTIVE}"
        if for_update:
            # Locking read: sees the latest committed row, not the transaction snapshot.
            sql += " FOR UPDATE"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, (int(request_id),))
            r = fetchone(cur)
            return _to_request(r) if r else None

    def list_by_status(
        self,
        status: ChangeStatus,
        *,
        tenant_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[ChangeRequest]:
        clauses = [_ACTIVE, "status=%s"]
        params: list[object] = [status.value]
        if tenant_id is not None:
            clauses.append("tenant_id=%s")
            params.append(int(tenant_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM change_requests
                WHERE {" AND ".join(clauses)}
                ORDER BY requested_at ASC, id ASC
                LIMIT %s
                """,
                tuple(params + [int(limit)]),
            )
            return [_to_request(r) for r in fetchall(cur)]

    def list_by_subject(
        self,
        subject_id: int,
        *,
        status: Optional[ChangeStatus] = None,
    ) -> Sequence[ChangeRequest]:
        clauses = [_ACTIVE, "subject_id=%s"]
        params: list[object] = [int(subject_id)]
        if status is not None:
            clauses.append("status=%s")
            params.append(status.value)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM change_requests
                WHERE {" AND ".join(clauses)}
                ORDER BY effective_date DESC, id DESC
                """,
                tuple(params),
            )
            return [_to_request(r) for r in fetchall(cur)]

    def list_by_tenant(
        self,
        *,
        tenant_ids: Optional[Collection[int]],
        filters: ChangeRequestFilters,
        page: int,
        limit: int,
    ) -> Page:
        if tenant_ids is not None and not tenant_ids:
            return Page(data=[], page=page, limit=limit, total=0)

        clauses = [_ACTIVE]
        params: list[object] = []
        if tenant_ids is not None:
            clause, values = _in_clause("tenant_id", tenant_ids)
            clauses.append(clause)
            params.extend(values)
        if filters.subject_id is not None:
            clauses.append("subject_id=%s")
            params.append(int(filters.subject_id))
        if filters.change_kind is not None:
            clauses.append("change_kind=%s")
            params.append(filters.change_kind.value)
        if filters.status is not None:
            clauses.append("status=%s")
            params.append(filters.status.value)
        if filters.effective_from is not None:
            clauses.append("effective_date>=%s")
            params.append(filters.effective_from)
        if filters.effective_to is not None:
            clauses.append("effective_date<=%s")
            params.append(filters.effective_to)
        if filters.is_applied is not None:
            clauses.append("is_applied=%s")
            params.append(1 if filters.is_applied else 0)
        if filters.search:
            clauses.append("(reason LIKE %s OR notes LIKE %s)")
            like = f"%{filters.search}%"
            params.extend([like, like])

        where = " AND ".join(clauses)
        offset = (page - 1) * limit

        with db_cursor(self._conn_factory) as (_, cur):
            # The window count is evaluated over the same rows as the page.
            cur.execute(
                f"""
                SELECT {_COLUMNS}, COUNT(*) OVER() AS total_count
                FROM change_requests
                WHERE {where}
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), int(offset)]),
            )
            rows = fetchall(cur)
            if rows:
                total = int(rows[0]["total_count"])
            else:
                # Past the last page: same connection, same read view.
                cur.execute(f"SELECT COUNT(*) AS total_count FROM change_requests WHERE {where}", tuple(params))
                total = int(fetchone(cur)["total_count"])

        return Page(data=[_to_request(r) for r in rows], page=page, limit=limit, total=total)

    def list_due(self, *, today: date, tenant_id: Optional[int] = None) -> Sequence[ChangeRequest]:
        clauses = [_ACTIVE, "status=%s", "is_applied=0", "effective_date<=%s"]
        params: list[object] = [ChangeStatus.APPROVED.value, today]
        if tenant_id is not None:
            clauses.append("tenant_id=%s")
            params.append(int(tenant_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM change_requests
                WHERE {" AND ".join(clauses)}
                ORDER BY effective_date ASC, id ASC
                """,
                tuple(params),
            )
            return [_to_request(r) for r in fetchall(cur)]

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE change_requests
                SET effective_date=%s, proposal=%s, proposed_names=%s, reason=%s, notes=%s, updated_at=%s
                WHERE id=%s AND status=%s AND {_ACTIVE}
                """,
                (
                    effective_date,
                    dump_json(proposal.to_payload()),
                    dump_json(proposed_names),
                    reason,
                    notes,
                    updated_at,
                    int(request_id),
                    ChangeStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def _transition(self, request_id: int, expected: ChangeStatus, assignments: str, values: tuple) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE change_requests
                SET {assignments}, updated_at=NOW()
                WHERE id=%s AND status=%s AND {_ACTIVE}
                """,
                values + (int(request_id), expected.value),
            )
            return cur.rowcount > 0

    def mark_approved(self, request_id: int, *, approved_by: int, approved_at: datetime, notes: Optional[str]) -> bool:
        return self._transition(
            request_id,
            ChangeStatus.PENDING,
            "status=%s, approved_by=%s, approved_at=%s, approval_notes=%s",
            (ChangeStatus.APPROVED.value, int(approved_by), approved_at, notes),
        )

    def mark_rejected(self, request_id: int, *, rejected_by: int, rejected_at: datetime, reason: str) -> bool:
        return self._transition(
            request_id,
            ChangeStatus.PENDING,
            "status=%s, rejected_by=%s, rejected_at=%s, rejection_reason=%s",
            (ChangeStatus.REJECTED.value, int(rejected_by), rejected_at, reason),
        )

    def mark_cancelled(self, request_id: int, *, cancelled_by: int, cancelled_at: datetime) -> bool:
        return self._transition(
            request_id,
            ChangeStatus.PENDING,
            "status=%s, cancelled_by=%s, cancelled_at=%s",
            (ChangeStatus.CANCELLED.value, int(cancelled_by), cancelled_at),
        )

    def mark_applied(self, request_id: int, *, applied_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE change_requests
                SET status=%s, is_applied=1, applied_at=%s, updated_at=NOW()
                WHERE id=%s AND status=%s AND is_applied=0 AND {_ACTIVE}
                """,
                (ChangeStatus.APPLIED.value, applied_at, int(request_id), ChangeStatus.APPROVED.value),
            )
            return cur.rowcount > 0

    def soft_delete(self, request_id: int, *, deleted_at: datetime) -> bool:
        return self._transition(
            request_id,
            ChangeStatus.PENDING,
            "deleted_at=%s",
            (deleted_at,),
        )

    def statistics(self, *, tenant_ids: Optional[Collection[int]]) -> dict:
        clauses = [_ACTIVE]
        params: list[object] = []
        if tenant_ids is not None:
            if not tenant_ids:
                return {"total": 0, "avg_salary_delta_pct": None, "by_kind": {}, "by_status": {}}
            clause, values = _in_clause("tenant_id", tenant_ids)
            clauses.append(clause)
            params.extend(values)
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT COUNT(*) AS total, AVG(salary_delta_pct) AS avg_pct FROM change_requests WHERE {where}",
                tuple(params),
            )
            totals = fetchone(cur) or {}
            cur.execute(
                f"SELECT change_kind, COUNT(*) AS n FROM change_requests WHERE {where} GROUP BY change_kind",
                tuple(params),
            )
            by_kind = {r["change_kind"]: int(r["n"]) for r in fetchall(cur)}
            cur.execute(
                f"SELECT status, COUNT(*) AS n FROM change_requests WHERE {where} GROUP BY status",
                tuple(params),
            )
            by_status = {r["status"]: int(r["n"]) for r in fetchall(cur)}

        return {
            "total": int(totals.get("total") or 0),
            "avg_salary_delta_pct": totals.get("avg_pct"),
            "by_kind": by_kind,
            "by_status": by_status,
        }
