"""
Status, threat-level and broadcast request/response models.
"""
from datetime import datetime

from pydantic import BaseModel, Field


class ThreatLevelUpdate(BaseModel):
    """Validated against ThreatLevel by the store so unknown values get the allowed list back."""
    level: str = Field(..., max_length=32)


class ThreatLevelResponse(BaseModel):
    level: str
    updated_at: datetime | None = None
    message: str | None = None


class SystemStatusResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    threat_level: str
    disclaimer: str


class BroadcastCreate(BaseModel):
    message: str = Field(..., max_length=2000)
    from_user: str = Field("admin", alias="from", max_length=100)

    model_config = {"populate_by_name": True}
