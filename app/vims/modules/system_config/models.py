from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.vims.constants import ConfigurationType
from app.vims.models import Base
from app.vims.utils import utcnow


class SystemConfiguration(Base):
    __tablename__ = "system_configurations"
    __table_args__ = (
        Index("idx_system_configurations_type", "config_type"),
    )

    id: Mapped[int] = mapped_column("config_id", Integer, primary_key=True)

    config_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    config_value: Mapped[str] = mapped_column(String(1000), nullable=False)  # coerced by typed getters
    config_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    config_type: Mapped[ConfigurationType] = mapped_column(
        Enum(ConfigurationType, native_enum=False, length=32), nullable=False, default=ConfigurationType.SYSTEM
    )

    is_encrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_read_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
