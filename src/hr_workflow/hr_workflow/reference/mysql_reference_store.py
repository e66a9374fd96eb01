from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from ..core.constants import ADJUSTMENT_FIELD_PREFIX, ALLOWANCE_FIELD_PREFIX
from ..core.enums import ReferenceKind
from ..core.exceptions import SubjectNotFound, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import SubjectRecord
from .repository import ReferenceStore

# Subject field key -> employees column.
_EMPLOYEE_COLUMNS = {
    "position_id": "position_id",
    "department_id": "department_id",
    "company_id": "company_id",
    "basic_salary": "basic_salary",
    "grade_code": "grade_code",
    "employment_status": "employment_status",
}

_REFERENCE_QUERIES = {
    ReferenceKind.POSITION: "SELECT name FROM positions WHERE id=%s AND deleted_at IS NULL",
    ReferenceKind.DEPARTMENT: "SELECT name FROM departments WHERE id=%s AND deleted_at IS NULL",
    ReferenceKind.COMPANY: "SELECT name FROM companies WHERE id=%s AND deleted_at IS NULL",
    ReferenceKind.SALARY_GRADE: "SELECT name FROM salary_grades WHERE grade_code=%s AND deleted_at IS NULL",
}


class MySQLReferenceStore(ReferenceStore):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def resolve_subject(self, subject_id: int) -> Optional[SubjectRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT e.id, e.employee_code, e.name, e.company_id, e.department_id,
                       e.position_id, e.basic_salary, e.grade_code, e.employment_status,
                       c.name AS company_name, d.name AS department_name,
                       p.name AS position_name, g.name AS grade_name
                FROM employees e
                LEFT JOIN companies c ON c.id = e.company_id
                LEFT JOIN departments d ON d.id = e.department_id
                LEFT JOIN positions p ON p.id = e.position_id
                LEFT JOIN salary_grades g ON g.grade_code = e.grade_code
                WHERE e.id=%s AND e.deleted_at IS NULL
                """,
                (int(subject_id),),
            )
            r = fetchone(cur)
            if not r:
                return None

            fields: dict[str, Any] = {key: r.get(col) for key, col in _EMPLOYEE_COLUMNS.items()}
            if fields["basic_salary"] is not None:
                fields["basic_salary"] = Decimal(fields["basic_salary"])

            cur.execute(
                "SELECT allowance_type, amount FROM employee_allowances WHERE employee_id=%s",
                (int(subject_id),),
            )
            for a in fetchall(cur):
                fields[f"{ALLOWANCE_FIELD_PREFIX}{a['allowance_type']}"] = Decimal(a["amount"])

            cur.execute(
                "SELECT pay_period, adjustment_type, amount FROM payroll_adjustment_lines WHERE employee_id=%s",
                (int(subject_id),),
            )
            for line in fetchall(cur):
                key = f"{ADJUSTMENT_FIELD_PREFIX}{line['pay_period']}.{line['adjustment_type']}"
                fields[key] = Decimal(line["amount"])

            return SubjectRecord(
                subject_id=int(r["id"]),
                employee_code=r["employee_code"],
                name=r["name"],
                tenant_id=int(r["company_id"]),
                fields=fields,
                display_names={
                    "company_name": r.get("company_name"),
                    "department_name": r.get("department_name"),
                    "position_name": r.get("position_name"),
                    "grade_name": r.get("grade_name"),
                },
            )

    def resolve_reference_entity(self, kind: ReferenceKind, entity_id: Any) -> Optional[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_REFERENCE_QUERIES[kind], (entity_id,))
            r = fetchone(cur)
            return r["name"] if r else None

    def apply_changes(self, subject_id: int, changes: Mapping[str, Any]) -> SubjectRecord:
        columns: list[str] = []
        params: list[object] = []
        with db_cursor(self._conn_factory) as (_, cur):
            for key, value in changes.items():
                if key in _EMPLOYEE_COLUMNS:
                    columns.append(f"{_EMPLOYEE_COLUMNS[key]}=%s")
                    params.append(value)
                elif key.startswith(ALLOWANCE_FIELD_PREFIX):
                    cur.execute(
                        """
                        INSERT INTO employee_allowances(employee_id, allowance_type, amount)
                        VALUES(%s,%s,%s)
                        ON DUPLICATE KEY UPDATE amount=VALUES(amount)
                        """,
                        (int(subject_id), key[len(ALLOWANCE_FIELD_PREFIX):], value),
                    )
                elif key.startswith(ADJUSTMENT_FIELD_PREFIX):
                    pay_period, adjustment_type = key[len(ADJUSTMENT_FIELD_PREFIX):].split(".", 1)
                    cur.execute(
                        """
                        INSERT INTO payroll_adjustment_lines(employee_id, pay_period, adjustment_type, amount)
                        VALUES(%s,%s,%s,%s)
                        ON DUPLICATE KEY UPDATE amount=VALUES(amount)
                        """,
                        (int(subject_id), pay_period, adjustment_type, value),
                    )
                else:
                    raise ValidationError(f"Unknown subject field: {key}")

            if columns:
                cur.execute(
                    f"UPDATE employees SET {', '.join(columns)}, updated_at=NOW() WHERE id=%s AND deleted_at IS NULL",
                    tuple(params + [int(subject_id)]),
                )
                if cur.rowcount == 0:
                    raise SubjectNotFound(subject_id)

        subject = self.resolve_subject(subject_id)
        if subject is None:
            raise SubjectNotFound(subject_id)
        return subject
