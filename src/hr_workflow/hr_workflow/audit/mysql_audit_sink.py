from __future__ import annotations

from typing import Sequence

from ..common.json_codec import dump_json, load_json
from ..core.enums import AuditAction
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .model import AuditEvent
from .sink import AuditSink


class MySQLAuditSink(AuditSink):
    """Append-only audit table.

    Writes join the caller's ``atomic()`` transaction when one is open.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def record(self, event: AuditEvent) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO change_request_audit(
                    request_id, tenant_id, actor_id, action, before_state, after_state, created_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(event.request_id),
                    int(event.tenant_id),
                    int(event.actor_id),
                    event.action.value,
                    dump_json(event.before) if event.before is not None else None,
                    dump_json(event.after) if event.after is not None else None,
                    event.timestamp,
                ),
            )

    def list_for_request(self, request_id: int) -> Sequence[AuditEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT request_id, tenant_id, actor_id, action, before_state, after_state, created_at
                FROM change_request_audit
                WHERE request_id=%s
                ORDER BY id
                """,
                (int(request_id),),
            )
            return [
                AuditEvent(
                    actor_id=int(r["actor_id"]),
                    action=AuditAction(r["action"]),
                    request_id=int(r["request_id"]),
                    tenant_id=int(r["tenant_id"]),
                    timestamp=r["created_at"],
                    before=load_json(r.get("before_state")) or None,
                    after=load_json(r.get("after_state")) or None,
                )
                for r in fetchall(cur)
            ]
