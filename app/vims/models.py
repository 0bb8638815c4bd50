from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.vims.constants import UserRole, UserStatus
from app.vims.utils import utcnow


class Base(DeclarativeBase):
    pass


class User(Base):
    """
    System user of the vehicle-insurance back-office.
    Rows are never hard-deleted; `is_deleted` hides them from listings and statistics.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "user_role"),
        Index("idx_users_status", "user_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    role: Mapped[UserRole] = mapped_column("user_role", Enum(UserRole, native_enum=False, length=32), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        "user_status", Enum(UserStatus, native_enum=False, length=32), nullable=False, default=UserStatus.PENDING
    )

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column("account_locked_until", DateTime(timezone=False), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps are assigned by AccountService on every write
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def is_account_locked(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.locked_until is not None and self.locked_until > now

    def can_login(self, now: datetime | None = None) -> bool:
        return self.status == UserStatus.ACTIVE and not self.is_deleted and not self.is_account_locked(now)


class UserActivity(Base):
    """
    Append-only activity record for one account.
    Rows are only removed by the retention purge.
    """

    __tablename__ = "user_activities"
    __table_args__ = (
        Index("idx_user_activities_user_ts", "user_id", "activity_timestamp"),
        Index("idx_user_activities_type", "activity_type"),
        Index("idx_user_activities_ts", "activity_timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    activity_description: Mapped[str] = mapped_column(String(500), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    additional_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    activity_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    user: Mapped[User] = relationship(lazy="joined")


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.vims.modules.system_config.models import SystemConfiguration  # noqa: E402,F401
