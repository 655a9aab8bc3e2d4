"""
Application Log Model

Append-only event records (level, category, message, source IP and optional
JSON metadata) written by any part of the system that needs an audit trail and
read back by the admin dashboard.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Integer, String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from bordersafety.core.database import Base, UTCDateTime, utcnow


class LogLevel(str, Enum):
    """Recognised log severities"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SECURITY = "SECURITY"


class AppLog(Base):
    """
    Application Log Table

    ``sqlite_autoincrement`` makes SQLite hand out ids from a persistent
    sequence, so deleting the newest row never lets its id come back.
    """
    __tablename__ = "app_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)  # LogLevel value
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)  # AUTH, SOS, REPORT, SYSTEM...
    message: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 capable
    # "metadata" is reserved on declarative classes, hence the attribute name
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "category": self.category,
            "message": self.message,
            "ip": self.ip,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AppLog {self.id} {self.level} {self.category}>"
