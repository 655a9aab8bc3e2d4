"""
Application log request/response models.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AppLogCreate(BaseModel):
    """Body for creating a log entry; the IP is taken from the request."""
    level: str = Field(..., max_length=16)
    category: str = Field(..., max_length=64)
    message: str = Field(..., min_length=1, max_length=10000)
    metadata: dict[str, Any] | None = None


class AppLogResponse(BaseModel):
    id: int
    level: str
    category: str
    message: str
    ip: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class AppLogListResponse(BaseModel):
    """Paged log listing, newest first."""
    items: list[AppLogResponse]
    total: int
    limit: int
    offset: int


class LogWindowStats(BaseModel):
    total: int
    errors: int
    security: int


class AppLogStatsResponse(BaseModel):
    total: int
    last_hour: LogWindowStats
    last_24_hours: LogWindowStats


class AppLogDeleteResponse(BaseModel):
    id: int
    deleted: bool
