from __future__ import annotations

import logging
from functools import wraps

from flask import Flask, jsonify, request, session

from ..common.datetime_utils import parse_iso_date
from ..core.enums import ChangeKind, ChangeStatus, Role
from ..core.exceptions import (
    AlreadyApplied,
    AuthorizationError,
    ConflictingChangeExists,
    DomainError,
    InvalidTransition,
    NotFound,
    NotYetEffective,
    ValidationError,
)
from ..container import Container
from .model import Actor, ChangeRequestFilters

logger = logging.getLogger(__name__)

# Most specific class first.
_STATUS_CODES: list[tuple[type[DomainError], int]] = [
    (NotFound, 404),
    (ValidationError, 400),
    (AuthorizationError, 403),
    (InvalidTransition, 409),
    (NotYetEffective, 409),
    (AlreadyApplied, 409),
    (ConflictingChangeExists, 409),
]


def status_code_for(error: DomainError) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(error, cls):
            return code
    return 400


def _error(code: str, message: str, status: int, **extra):
    body = {"success": False, "error": {"code": code, "message": message, **extra}}
    return jsonify(body), status


def current_actor() -> Actor:
    """Actor from the session written by the authentication layer."""
    tenant_ids = session.get("tenant_ids") or []
    return Actor(
        actor_id=int(session["user_id"]),
        role=Role(session.get("role")),
        accessible_tenant_ids=frozenset(int(t) for t in tenant_ids),
    )


def has_valid_session() -> bool:
    try:
        current_actor()
    except (KeyError, TypeError, ValueError):
        return False
    return True


def _opt_int_arg(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _opt_enum_arg(enum_cls, name: str):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value!r}")


def _opt_date_arg(name: str):
    value = request.args.get(name)
    return parse_iso_date(value) if value else None


def _opt_bool_arg(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    return value.strip().lower() in {"1", "true", "yes"}


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def register(app: Flask, container: Container) -> None:
    service = container.change_request_service
    machine = container.approval_state_machine
    applier = container.applier

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if not has_valid_session():
                return _error("UNAUTHORIZED", "Login required", 401)
            return view(*args, **kwargs)

        return wrapper

    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        status = status_code_for(e)
        extra = {}
        if isinstance(e, ConflictingChangeExists):
            extra["conflicting_ids"] = e.conflicting_ids
        logger.info("request refused code=%s status=%s path=%s", e.code, status, request.path)
        return _error(e.code, str(e), status, **extra)

    @app.route("/api/change-requests", methods=["GET"], endpoint="list_change_requests")
    @login_required
    def list_change_requests():
        filters = ChangeRequestFilters(
            tenant_id=_opt_int_arg("tenant_id"),
            subject_id=_opt_int_arg("subject_id"),
            change_kind=_opt_enum_arg(ChangeKind, "change_kind"),
            status=_opt_enum_arg(ChangeStatus, "status"),
            effective_from=_opt_date_arg("effective_from"),
            effective_to=_opt_date_arg("effective_to"),
            is_applied=_opt_bool_arg("is_applied"),
            search=(request.args.get("search") or "").strip() or None,
        )
        page = service.list_requests(
            current_actor(),
            filters,
            page=_opt_int_arg("page") or 1,
            limit=_opt_int_arg("limit"),
        )
        return jsonify({"success": True, **page.to_dict()})

    @app.route("/api/change-requests", methods=["POST"], endpoint="create_change_request")
    @login_required
    def create_change_request():
        body = _json_body()
        created = service.create(
            actor=current_actor(),
            subject_id=body.get("subject_id"),
            change_kind=body.get("change_kind"),
            effective_date=body.get("effective_date"),
            proposed_state=body.get("proposed_state"),
            tenant_id=body.get("tenant_id"),
            reason=body.get("reason"),
            notes=body.get("notes"),
        )
        return jsonify({"success": True, "data": created.to_dict()}), 201

    @app.route("/api/change-requests/bulk", methods=["POST"], endpoint="bulk_create_change_requests")
    @login_required
    def bulk_create_change_requests():
        body = _json_body()
        subject_ids = body.get("subject_ids")
        if not isinstance(subject_ids, list) or not subject_ids:
            raise ValidationError("subject_ids must be a non-empty list")
        result = service.bulk_create(
            actor=current_actor(),
            subject_ids=subject_ids,
            change_kind=body.get("change_kind"),
            effective_date=body.get("effective_date"),
            proposed_state=body.get("proposed_state"),
            reason=body.get("reason"),
            notes=body.get("notes"),
        )
        return jsonify({"success": True, "data": result}), 201

    @app.route("/api/change-requests/pending", methods=["GET"], endpoint="pending_change_requests")
    @login_required
    def pending_change_requests():
        rows = service.list_pending_approvals(current_actor(), _opt_int_arg("tenant_id"))
        return jsonify({"success": True, "data": [r.to_dict() for r in rows]})

    @app.route("/api/change-requests/due", methods=["GET"], endpoint="due_change_requests")
    @login_required
    def due_change_requests():
        actor = current_actor()
        rows = [r for r in applier.list_due_for_application(_opt_int_arg("tenant_id")) if actor.can_access(r.tenant_id)]
        return jsonify({"success": True, "data": [r.to_dict() for r in rows]})

    @app.route("/api/change-requests/apply-due", methods=["POST"], endpoint="apply_due_change_requests")
    @login_required
    def apply_due_change_requests():
        report = applier.apply_due(current_actor(), _opt_int_arg("tenant_id"))
        return jsonify({"success": True, "data": report.to_dict()})

    @app.route("/api/change-requests/statistics", methods=["GET"], endpoint="change_request_statistics")
    @login_required
    def change_request_statistics():
        stats = service.statistics(current_actor(), _opt_int_arg("tenant_id"))
        avg = stats.get("avg_salary_delta_pct")
        stats["avg_salary_delta_pct"] = str(avg) if avg is not None else None
        return jsonify({"success": True, "data": stats})

    @app.route("/api/change-requests/<int:request_id>", methods=["GET"], endpoint="get_change_request")
    @login_required
    def get_change_request(request_id: int):
        found = service.get(request_id, current_actor())
        return jsonify({"success": True, "data": found.to_dict()})

    @app.route("/api/change-requests/<int:request_id>", methods=["PATCH"], endpoint="update_change_request")
    @login_required
    def update_change_request(request_id: int):
        updated = machine.update(request_id, _json_body(), current_actor())
        return jsonify({"success": True, "data": updated.to_dict()})

    @app.route("/api/change-requests/<int:request_id>", methods=["DELETE"], endpoint="delete_change_request")
    @login_required
    def delete_change_request(request_id: int):
        machine.delete(request_id, current_actor())
        return jsonify({"success": True})

    @app.route("/api/change-requests/<int:request_id>/approve", methods=["POST"], endpoint="approve_change_request")
    @login_required
    def approve_change_request(request_id: int):
        body = request.get_json(silent=True) or {}
        approved = machine.approve(
            request_id,
            current_actor(),
            body.get("approval_notes"),
            check_conflicts=bool(body.get("check_conflicts", False)),
        )
        return jsonify({"success": True, "data": approved.to_dict()})

    @app.route("/api/change-requests/<int:request_id>/reject", methods=["POST"], endpoint="reject_change_request")
    @login_required
    def reject_change_request(request_id: int):
        body = request.get_json(silent=True) or {}
        rejected = machine.reject(request_id, current_actor(), body.get("rejection_reason"))
        return jsonify({"success": True, "data": rejected.to_dict()})

    @app.route("/api/change-requests/<int:request_id>/cancel", methods=["POST"], endpoint="cancel_change_request")
    @login_required
    def cancel_change_request(request_id: int):
        cancelled = machine.cancel(request_id, current_actor())
        return jsonify({"success": True, "data": cancelled.to_dict()})

    @app.route("/api/change-requests/<int:request_id>/apply", methods=["POST"], endpoint="apply_change_request")
    @login_required
    def apply_change_request(request_id: int):
        applied = applier.apply(request_id, current_actor())
        return jsonify({"success": True, "data": applied.to_dict()})

    @app.route("/api/change-requests/<int:request_id>/conflicts", methods=["GET"], endpoint="change_request_conflicts")
    @login_required
    def change_request_conflicts(request_id: int):
        rows = service.find_conflicts(request_id, current_actor())
        return jsonify({"success": True, "data": [r.to_dict() for r in rows]})

    @app.route("/api/change-requests/<int:request_id>/audit", methods=["GET"], endpoint="change_request_audit")
    @login_required
    def change_request_audit(request_id: int):
        events = service.audit_trail(request_id, current_actor())
        data = [
            {
                "actor_id": e.actor_id,
                "action": e.action.value,
                "timestamp": e.timestamp.isoformat(),
                "before": e.before,
                "after": e.after,
            }
            for e in events
        ]
        return jsonify({"success": True, "data": data})

    @app.route("/api/employees/<int:subject_id>/change-requests", methods=["GET"], endpoint="subject_change_requests")
    @login_required
    def subject_change_requests(subject_id: int):
        rows = service.list_by_subject(subject_id, current_actor(), status=_opt_enum_arg(ChangeStatus, "status"))
        return jsonify({"success": True, "data": [r.to_dict() for r in rows]})
