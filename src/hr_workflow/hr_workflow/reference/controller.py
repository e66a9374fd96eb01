from __future__ import annotations

from functools import wraps

from flask import Flask, jsonify, request, session

from ..container import Container
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, ValidationError


def register(app: Flask, container: Container) -> None:
    departments = container.department_service

    def admin_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "error": {"code": "UNAUTHORIZED", "message": "Login required"}}), 401
            if session.get("role") != Role.ADMIN.value:
                raise AuthorizationError("Admin role required")
            return view(*args, **kwargs)

        return wrapper

    @app.route("/api/departments/<int:dept_id>/path", methods=["GET"], endpoint="department_path")
    @admin_required
    def department_path(dept_id: int):
        return jsonify({"success": True, "data": departments.path_names(dept_id)})

    @app.route("/api/departments/<int:dept_id>/parent", methods=["PUT"], endpoint="assign_department_parent")
    @admin_required
    def assign_department_parent(dept_id: int):
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or "parent_id" not in body:
            raise ValidationError("parent_id is required")
        parent_id = body["parent_id"]
        departments.assign_parent(dept_id=dept_id, parent_id=int(parent_id) if parent_id is not None else None)
        return jsonify({"success": True})
