"""
Key/value store for process-wide settings that must survive restarts.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class SystemConfig(BaseModel, TimestampMixin):
    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
