"""ORM Models for the CPQ settings store — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from cpq.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── TEAM SETTINGS ─────────────────────────────────────────────────────────────
class TeamSetting(Base):
    """One JSON value per (team, key); the ``pricing`` key holds quotation defaults."""
    __tablename__ = "team_settings"
    __table_args__ = (UniqueConstraint("team_id", "setting_key", name="uq_team_setting_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False)
    setting_value: Mapped[Optional[dict]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
