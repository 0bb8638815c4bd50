from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.vims.audit import record_activity
from app.vims.db import unit_of_work
from app.vims.errors import ValidationError
from app.vims.models import User, UserActivity
from app.vims.pagination import Page, PageRequest, fetch
from app.vims.utils import isoformat, utcnow

logger = logging.getLogger(__name__)


def _cutoff(field: str, **delta: int) -> datetime:
    try:
        return utcnow() - timedelta(**delta)
    except OverflowError as e:
        raise ValidationError({field: "Value is out of range."}) from e


def activity_to_dict(a: UserActivity) -> dict[str, Any]:
    return {
        "id": a.id,
        "user_id": a.user_id,
        "username": a.user.username if a.user else None,
        "activity_type": a.activity_type,
        "activity_description": a.activity_description,
        "success": a.success,
        "error_message": a.error_message,
        "additional_data": a.additional_data,
        "ip_address": a.ip_address,
        "user_agent": a.user_agent,
        "session_id": a.session_id,
        "activity_timestamp": isoformat(a.activity_timestamp),
        "created_at": isoformat(a.created_at),
    }


class ActivityLog:
    """
    Append and query the activity log.

    `record` only adds to the session; the account service commits it in the
    same unit of work as the account change. Reads are newest first.
    """

    def __init__(self, s: Session) -> None:
        self.s = s

    # ---------- Append ----------
    def record(
        self,
        user: User,
        activity_type: str,
        description: str,
        success: bool = True,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
        additional_data: dict[str, Any] | str | None = None,
        error_message: str | None = None,
        activity_timestamp: datetime | None = None,
    ) -> UserActivity:
        logger.info("Logging activity for user %s: %s - %s", user.username, activity_type, description)
        return record_activity(
            self.s,
            user,
            activity_type,
            description,
            success=success,
            error_message=error_message,
            additional_data=additional_data,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            activity_timestamp=activity_timestamp,
        )

    def record_success(self, user: User, activity_type: str, description: str, **kwargs: Any) -> UserActivity:
        return self.record(user, activity_type, description, True, **kwargs)

    def record_failure(
        self, user: User, activity_type: str, description: str, error_message: str, **kwargs: Any
    ) -> UserActivity:
        return self.record(user, activity_type, description, False, error_message=error_message, **kwargs)

    # ---------- Reads ----------
    @staticmethod
    def _newest_first(stmt: Select) -> Select:
        return stmt.order_by(UserActivity.activity_timestamp.desc(), UserActivity.id.desc())

    def _list(self, *criteria: Any, page: PageRequest | None = None) -> list[UserActivity] | Page:
        stmt = self._newest_first(select(UserActivity).where(*criteria))
        return fetch(self.s, stmt, page)

    def for_user(self, user_id: int, page: PageRequest | None = None):
        return self._list(UserActivity.user_id == user_id, page=page)

    def by_type(self, activity_type: str, page: PageRequest | None = None):
        return self._list(UserActivity.activity_type == activity_type, page=page)

    def by_success(self, success: bool, page: PageRequest | None = None):
        return self._list(UserActivity.success.is_(success), page=page)

    def failed(self, page: PageRequest | None = None):
        return self.by_success(False, page=page)

    def between(self, start: datetime, end: datetime, page: PageRequest | None = None):
        """Inclusive on both ends."""
        return self._list(UserActivity.activity_timestamp.between(start, end), page=page)

    def recent(self, hours: int, page: PageRequest | None = None):
        cutoff = _cutoff("hours", hours=hours)
        return self._list(UserActivity.activity_timestamp >= cutoff, page=page)

    def by_ip(self, ip_address: str, page: PageRequest | None = None):
        return self._list(UserActivity.ip_address == ip_address, page=page)

    def by_session(self, session_id: str, page: PageRequest | None = None):
        return self._list(UserActivity.session_id == session_id, page=page)

    def search(self, term: str, page: PageRequest | None = None):
        """Case-insensitive substring match on the description."""
        return self._list(
            UserActivity.activity_description.icontains(term or "", autoescape=True), page=page
        )

    # ---------- Aggregates ----------
    def _count(self, *criteria: Any) -> int:
        stmt = select(func.count(UserActivity.id))
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.s.execute(stmt).scalar_one())

    def count(self) -> int:
        return self._count()

    def count_for_user(self, user_id: int) -> int:
        return self._count(UserActivity.user_id == user_id)

    def count_by_type(self, activity_type: str) -> int:
        return self._count(UserActivity.activity_type == activity_type)

    def count_by_success(self, success: bool) -> int:
        return self._count(UserActivity.success.is_(success))

    def count_between(self, start: datetime, end: datetime) -> int:
        return self._count(UserActivity.activity_timestamp.between(start, end))

    def most_frequent_types(self, limit: int | None = None) -> list[tuple[str, int]]:
        n = func.count(UserActivity.id)
        stmt = (
            select(UserActivity.activity_type, n)
            .group_by(UserActivity.activity_type)
            .order_by(n.desc(), UserActivity.activity_type.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [(t, int(c)) for t, c in self.s.execute(stmt).all()]

    # ---------- Retention ----------
    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete records with activity_timestamp strictly before `cutoff`. Irreversible."""
        with unit_of_work(self.s):
            result = self.s.execute(
                delete(UserActivity)
                .where(UserActivity.activity_timestamp < cutoff)
                .execution_options(synchronize_session=False)
            )
        deleted = int(result.rowcount or 0)
        logger.info("Purged %s activities older than %s", deleted, cutoff.isoformat())
        return deleted

    def cleanup(self, days_to_keep: int) -> int:
        deleted = self.purge_older_than(_cutoff("days_to_keep", days=days_to_keep))
        logger.info("Cleaned up activities older than %s days", days_to_keep)
        return deleted
