"""Apply every approved change request whose effective date has arrived.

Meant to be run once a day by cron or any other scheduler. Tenants are swept
one after another; a failing request never stops the sweep.
"""

from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.hr_workflow.hr_workflow.changes.model import Actor
from src.hr_workflow.hr_workflow.common.logging_config import configure_logging
from src.hr_workflow.hr_workflow.container import build_container


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--tenant", type=int, action="append", dest="tenants", help="limit the sweep to a tenant id")
    args = parser.parse_args(argv)

    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    container = build_container(db_config=dict(settings.DB_CONFIG))

    applier = container.applier
    tenants = args.tenants or sorted({r.tenant_id for r in applier.list_due_for_application()})

    failures = 0
    for tenant_id in tenants:
        report = applier.apply_due(Actor.system(), tenant_id)
        failures += len(report.skipped)
        print(f"tenant={tenant_id} applied={len(report.applied)} skipped={len(report.skipped)}")
        for request_id, code in sorted(report.skipped.items()):
            print(f"  request={request_id} error={code}")

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
