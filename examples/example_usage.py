"""Example: drive the workflow through the service layer (no Flask).

Lists the requests of tenant 1 still waiting for a decision.
"""

import importlib

from config import get_settings_module

from src.hr_workflow.hr_workflow.changes.model import Actor
from src.hr_workflow.hr_workflow.container import build_container
from src.hr_workflow.hr_workflow.core.enums import Role


def main():
    settings = importlib.import_module(get_settings_module())
    container = build_container(db_config=settings.DB_CONFIG)
    hr = Actor(actor_id=1, role=Role.HR, accessible_tenant_ids=frozenset({1}))
    for request in container.change_request_service.list_pending_approvals(hr):
        print(request.id, request.change_kind.value, request.subject_id, request.effective_date)


if __name__ == "__main__":
    main()
