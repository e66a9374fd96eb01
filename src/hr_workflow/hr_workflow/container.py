from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .audit.mysql_audit_sink import MySQLAuditSink
from .changes.applier import Applier
from .changes.conflicts import ConflictDetector
from .changes.mysql_change_request_repository import MySQLChangeRequestRepository
from .changes.service import ChangeRequestService
from .changes.snapshot import SnapshotEngine
from .changes.state_machine import ApprovalStateMachine
from .common.datetime_utils import now_local
from .core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .database.connection import DatabaseConnection, config_from_dict
from .reference.mysql_department_repository import MySQLDepartmentRepository
from .reference.mysql_reference_store import MySQLReferenceStore
from .reference.service import DepartmentService


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    change_requests_repo: MySQLChangeRequestRepository
    reference_store: MySQLReferenceStore
    departments_repo: MySQLDepartmentRepository
    audit_sink: MySQLAuditSink

    snapshot_engine: SnapshotEngine
    change_request_service: ChangeRequestService
    approval_state_machine: ApprovalStateMachine
    applier: Applier
    department_service: DepartmentService


def build_container(
    *,
    db_config: dict,
    clock: Callable[[], datetime] = now_local,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Container:
    conn = DatabaseConnection(config_from_dict(db_config))

    change_requests_repo = MySQLChangeRequestRepository(conn)
    reference_store = MySQLReferenceStore(conn)
    departments_repo = MySQLDepartmentRepository(conn)
    audit_sink = MySQLAuditSink(conn)

    snapshot_engine = SnapshotEngine(reference_store)
    conflicts = ConflictDetector(change_requests_repo)
    change_request_service = ChangeRequestService(
        change_requests_repo,
        snapshot_engine,
        audit_sink,
        conn,
        conflicts=conflicts,
        clock=clock,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
    )
    approval_state_machine = ApprovalStateMachine(
        change_requests_repo,
        snapshot_engine,
        audit_sink,
        conn,
        conflicts=conflicts,
        clock=clock,
    )
    applier = Applier(change_requests_repo, reference_store, audit_sink, conn, clock=clock)
    department_service = DepartmentService(departments_repo)

    return Container(
        conn=conn,
        change_requests_repo=change_requests_repo,
        reference_store=reference_store,
        departments_repo=departments_repo,
        audit_sink=audit_sink,
        snapshot_engine=snapshot_engine,
        change_request_service=change_request_service,
        approval_state_machine=approval_state_machine,
        applier=applier,
        department_service=department_service,
    )
