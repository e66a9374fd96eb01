from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Department
from .repository import DepartmentRepository


def _to_department(r: dict) -> Department:
    return Department(
        dept_id=int(r["id"]),
        dept_name=r["name"],
        parent_id=int(r["parent_id"]) if r.get("parent_id") is not None else None,
        company_id=int(r["company_id"]) if r.get("company_id") is not None else None,
    )


class MySQLDepartmentRepository(DepartmentRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_all(self) -> Sequence[Department]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT id, name, parent_id, company_id FROM departments WHERE deleted_at IS NULL ORDER BY name"
            )
            return [_to_department(r) for r in fetchall(cur)]

    def get_by_id(self, dept_id: int) -> Optional[Department]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT id, name, parent_id, company_id FROM departments WHERE id=%s AND deleted_at IS NULL",
                (int(dept_id),),
            )
            r = fetchone(cur)
            return _to_department(r) if r else None

    def set_parent(self, dept_id: int, parent_id: Optional[int]) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE departments SET parent_id=%s WHERE id=%s AND deleted_at IS NULL",
                (parent_id, int(dept_id)),
            )
            return cur.rowcount > 0
