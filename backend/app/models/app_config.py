from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base, utcnow

APP_CONFIG_ID = 1


class AppConfig(Base):
    """Site-wide settings. A single row with ``id = 1``."""

    __tablename__ = "app_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=APP_CONFIG_ID)
    maintenance_active: Mapped[bool] = mapped_column(default=False)
    maintenance_message: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
