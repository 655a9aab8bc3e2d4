"""
System Setting Model

Key/value rows for values the running system may change. The current threat
level lives here under the ``threat_level`` key.
"""
from sqlalchemy import Column, String, Text

from bordersafety.core.database import Base, UTCDateTime, utcnow


class Setting(Base):
    """System settings table, one row per key."""
    __tablename__ = "system_settings"

    key = Column(String(255), primary_key=True, index=True)
    value = Column(Text, nullable=False, default="")
    description = Column(String(500), nullable=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
