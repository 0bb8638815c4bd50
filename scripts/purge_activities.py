"""
Delete activity records older than the retention window.

Meant for a scheduler (cron, platform job). The window is, in order of
precedence: --days, the `activity.retention_days` configuration entry,
then ACTIVITY_RETENTION_DAYS (default 30).

Usage:
  python scripts/purge_activities.py [--days N]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.vims.modules.reporting.service import ReportingService  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402


def purge(*, days: int | None = None, database_url: str | None = None) -> int:
    default_days = int((os.environ.get("ACTIVITY_RETENTION_DAYS") or "30").strip())
    with script_session(resolve_database_url(database_url)) as s:
        result = ReportingService(s, default_retention_days=default_days).cleanup_old_data(days)
    print(f"Purged {result['deleted_activities']} activities older than {result['days_to_keep']} days.", flush=True)
    return result["deleted_activities"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge old activity records.")
    parser.add_argument("--days", type=int, default=None, help="Days of history to keep")
    args = parser.parse_args()
    logging.basicConfig(level=(os.environ.get("LOG_LEVEL") or "INFO").upper())
    purge(days=args.days)


if __name__ == "__main__":
    main()
