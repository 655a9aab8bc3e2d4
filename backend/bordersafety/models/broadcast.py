"""
Broadcast Model

Messages an administrator pushes to every visitor of the frontend banner.
"""
from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bordersafety.core.database import Base, UTCDateTime, utcnow


class Broadcast(Base):
    """Broadcast table; ids look like ``bc_1718000000000``."""
    __tablename__ = "broadcasts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    from_user: Mapped[str] = mapped_column(String(100), nullable=False, default="admin")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "from": self.from_user,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
