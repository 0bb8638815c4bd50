from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.vims import constants as C
from app.vims.constants import UserRole, UserStatus
from app.vims.modules.accounts.service import AccountService
from app.vims.modules.activities.service import ActivityLog, activity_to_dict
from app.vims.modules.system_config.service import ConfigurationService
from app.vims.pagination import PageRequest
from app.vims.utils import utcnow

logger = logging.getLogger(__name__)

HEALTHY = "HEALTHY"
WARNING = "WARNING"
UNHEALTHY = "UNHEALTHY"

FAILURE_RATE_THRESHOLD = 0.1
DASHBOARD_LIST_LIMIT = 50


class ReportingService:
    """
    Read-side composition over accounts, activities and configuration.
    Nothing is cached; every call recomputes from storage.
    """

    def __init__(
        self,
        s: Session,
        accounts: AccountService | None = None,
        activities: ActivityLog | None = None,
        configs: ConfigurationService | None = None,
        default_retention_days: int = 30,
    ) -> None:
        self.s = s
        self.activities = activities or ActivityLog(s)
        self.accounts = accounts or AccountService(s, activity_log=self.activities)
        self.configs = configs or ConfigurationService(s)
        self.default_retention_days = default_retention_days

    def _user_breakdown(self) -> dict[str, Any]:
        return {
            "total_users": self.accounts.count(),
            "active_users": self.accounts.count_by_status(UserStatus.ACTIVE),
            "blocked_users": self.accounts.count_by_status(UserStatus.BLOCKED),
            "pending_users": self.accounts.count_by_status(UserStatus.PENDING),
            "users_by_role": {r.value: self.accounts.count_by_role(r) for r in UserRole},
            "users_by_status": {st.value: self.accounts.count_by_status(st) for st in UserStatus},
        }

    @staticmethod
    def _header(report_type: str, title: str) -> dict[str, Any]:
        return {
            "report_type": report_type,
            "report_title": title,
            "generated_at": utcnow().isoformat(),
            "generated_by": "SYSTEM",
        }

    def _activities_since(self, delta: timedelta) -> int:
        now = utcnow()
        return self.activities.count_between(now - delta, now)

    # ---------- Dashboard ----------
    def dashboard_statistics(self) -> dict[str, Any]:
        logger.info("Getting dashboard statistics")
        stats: dict[str, Any] = self._user_breakdown()
        stats.update(
            {
                "total_activities": self.activities.count(),
                "activities_last_24_hours": self._activities_since(timedelta(hours=24)),
                "activities_last_7_days": self._activities_since(timedelta(days=7)),
                "total_configurations": self.configs.count(),
                "recent_activities": [
                    activity_to_dict(a)
                    for a in self.activities.recent(24, PageRequest(size=DASHBOARD_LIST_LIMIT)).items
                ],
                "failed_activities": [
                    activity_to_dict(a) for a in self.activities.failed(PageRequest(size=DASHBOARD_LIST_LIMIT)).items
                ],
                "timestamp": utcnow().isoformat(),
            }
        )
        return stats

    # ---------- Reports ----------
    def system_overview_report(self) -> dict[str, Any]:
        logger.info("Generating system overview report")
        report = self._header("SYSTEM_OVERVIEW", "System Overview Report")
        report.update(self._user_breakdown())
        report.update(
            {
                "total_activities": self.activities.count(),
                "successful_activities": self.activities.count_by_success(True),
                "failed_activities": self.activities.count_by_success(False),
                "activities_last_24_hours": self._activities_since(timedelta(hours=24)),
                "activities_last_7_days": self._activities_since(timedelta(days=7)),
                "activities_last_30_days": self._activities_since(timedelta(days=30)),
                "total_configurations": self.configs.count(),
                "system_version": C.SYSTEM_VERSION,
                "failed_login_attempts": self.activities.count_by_type(C.LOGIN_FAILED),
                "locked_accounts": len(self.accounts.list_locked()),
            }
        )
        return report

    def user_statistics_report(self) -> dict[str, Any]:
        logger.info("Generating user statistics report")
        report = self._header("USER_STATISTICS", "User Statistics Report")
        report.update(self._user_breakdown())
        report["activities_last_24_hours"] = self._activities_since(timedelta(hours=24))
        report["locked_accounts"] = len(self.accounts.list_locked())
        report["users_with_failed_logins"] = len(self.accounts.list_with_failed_logins())
        return report

    def activity_report(self, hours: int = 24) -> dict[str, Any]:
        logger.info("Generating activity report for last %s hours", hours)
        report = self._header("ACTIVITY_REPORT", f"Activity Report - Last {hours} Hours")
        window = self.activities.recent(hours)
        successful = sum(1 for a in window if a.success)
        by_type: dict[str, int] = {}
        for a in window:
            by_type[a.activity_type] = by_type.get(a.activity_type, 0) + 1
        report.update(
            {
                "hours": hours,
                "total_activities": len(window),
                "successful_activities": successful,
                "failed_activities": len(window) - successful,
                "activities_by_type": dict(sorted(by_type.items(), key=lambda kv: (-kv[1], kv[0]))),
            }
        )
        return report

    def configuration_summary(self) -> dict[str, Any]:
        logger.info("Getting system configuration summary")
        summary = self.configs.statistics()
        summary["timestamp"] = utcnow().isoformat()
        return summary

    # ---------- Health ----------
    def _probe(self, name: str, fn: Callable[[], Any]) -> tuple[Any, bool]:
        """Run one health sub-query; a storage failure is reported, not raised."""
        try:
            return fn(), True
        except SQLAlchemyError:
            logger.exception("Health check failed for %s", name)
            self.s.rollback()
            return None, False

    def system_health(self) -> dict[str, Any]:
        logger.info("Checking system health status")
        health: dict[str, Any] = {}

        _, db_ok = self._probe("database", lambda: self.s.execute(text("SELECT 1")).scalar_one())
        health["database"] = HEALTHY if db_ok else UNHEALTHY

        counts, ok = self._probe(
            "user system",
            lambda: (self.accounts.count(), self.accounts.count_by_status(UserStatus.ACTIVE)),
        )
        if ok:
            health["total_users"], health["active_users"] = counts
            health["user_system"] = HEALTHY if counts[0] > 0 else WARNING
        else:
            health["user_system"] = UNHEALTHY

        counts, ok = self._probe(
            "activity system",
            lambda: (self.activities.count(), self.activities.count_by_success(False)),
        )
        if ok:
            total, failed = counts
            rate = failed / total if total else 0.0
            health.update({"total_activities": total, "failed_activities": failed, "failure_rate": rate})
            health["activity_system"] = HEALTHY if rate < FAILURE_RATE_THRESHOLD else WARNING
        else:
            health["activity_system"] = UNHEALTHY

        total, ok = self._probe("configuration system", self.configs.count)
        if ok:
            health["total_configurations"] = total
            health["configuration_system"] = HEALTHY if total > 0 else WARNING
        else:
            health["configuration_system"] = UNHEALTHY

        parts = ("database", "user_system", "activity_system", "configuration_system")
        if all(health[p] == HEALTHY for p in parts):
            health["overall_status"] = HEALTHY
        elif health["database"] == UNHEALTHY:
            health["overall_status"] = UNHEALTHY
        else:
            health["overall_status"] = WARNING
        health["timestamp"] = utcnow().isoformat()

        logger.info("System health status checked: %s", health["overall_status"])
        return health

    # ---------- Maintenance ----------
    def retention_days(self) -> int:
        """Configured retention, falling back to the process default."""
        return self.configs.get_int(C.CFG_RETENTION_DAYS, self.default_retention_days)

    def cleanup_old_data(self, days_to_keep: int | None = None) -> dict[str, Any]:
        days = self.retention_days() if days_to_keep is None else days_to_keep
        logger.info("Starting cleanup of old data, keeping last %s days", days)
        deleted = self.activities.cleanup(days)
        logger.info("Old data cleanup completed")
        return {"days_to_keep": days, "deleted_activities": deleted, "timestamp": utcnow().isoformat()}

