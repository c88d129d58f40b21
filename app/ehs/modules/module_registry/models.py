from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.ehs.models import Base


class ModuleStateRow(Base):
    """
    Persisted on/off flag per module type.

    Rows are seeded once per catalog module and never deleted by the app; rows
    whose module_type left the catalog are ignored on load.
    """

    __tablename__ = "module_states"

    module_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    last_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    last_changed_by: Mapped[str | None] = mapped_column(String(320), nullable=True)  # actor email or "system"
    settings_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # per-module JSON object

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
