from __future__ import annotations

import argparse
import json
import sys


def _bootstrap_app():
    from app import create_app

    app = create_app()
    app.app_context().push()
    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recheck settlement statement invariants and report drift.")
    parser.add_argument("--period", default="", help="Only check statements for this YYYY-MM period.")
    parser.add_argument("--persist", action="store_true", help="Persist report row in reconciliation_reports.")
    args = parser.parse_args(argv)

    _bootstrap_app()
    from app.services.reconciliation_service import persist_report, reconcile_statements

    summary = reconcile_statements(period=(args.period or None))
    if args.persist:
        row = persist_report(summary, created_by=None)
        summary["report_id"] = int(row.id)

    print(json.dumps(summary, indent=2))
    return 0 if int(summary.get("drift_count") or 0) == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
