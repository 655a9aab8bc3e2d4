"""
Log Administration Router

Admin dashboard access to the application log: paged listing with optional
level/category filters, manual entry creation, statistics, delete-by-id and
clear-all.

API endpoints (under the configured API prefix):
  GET    /admin/logs
  POST   /admin/logs
  GET    /admin/logs/stats
  DELETE /admin/logs
  DELETE /admin/logs/{log_id}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from bordersafety.core.deps import client_ip, get_log_store
from bordersafety.schemas.app_log import (
    AppLogCreate,
    AppLogDeleteResponse,
    AppLogListResponse,
    AppLogResponse,
    AppLogStatsResponse,
)
from bordersafety.services.app_log_store import AppLogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/logs", tags=["log-admin"])

MAX_PAGE_SIZE = 1000


@router.get("", response_model=AppLogListResponse)
async def list_logs(
    limit: int = Query(100, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    offset: int = Query(0, ge=0),
    level: Optional[str] = Query(None, description="DEBUG/INFO/WARN/ERROR/SECURITY"),
    category: Optional[str] = Query(None),
    store: AppLogStore = Depends(get_log_store),
):
    """
    List the most recent log entries, newest first.

    Read-only. ``total`` counts every entry matching the filters, not just the
    returned page.
    """
    items = await store.list(limit=limit, offset=offset, level=level, category=category)
    total = await store.count(level=level, category=category)
    return {
        "items": [entry.to_dict() for entry in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("", response_model=AppLogResponse, status_code=status.HTTP_201_CREATED)
async def create_log(
    body: AppLogCreate,
    request: Request,
    store: AppLogStore = Depends(get_log_store),
):
    """Append an entry; the originating IP comes from the request."""
    entry = await store.append(
        body.level,
        body.category,
        body.message,
        ip=client_ip(request),
        metadata=body.metadata,
    )
    return entry.to_dict()


@router.get("/stats", response_model=AppLogStatsResponse)
async def log_stats(store: AppLogStore = Depends(get_log_store)):
    return await store.stats()


@router.delete("")
async def clear_logs(request: Request, store: AppLogStore = Depends(get_log_store)):
    """
    Delete every log entry.

    The clear itself is recorded as the first entry of the fresh log so the
    action stays auditable.
    """
    removed = await store.clear()
    ip = client_ip(request)
    await store.append("SECURITY", "ADMIN", "Logs cleared", ip=ip, metadata={"removed": removed})
    return {"success": True, "cleared": removed}


@router.delete("/{log_id}", response_model=AppLogDeleteResponse)
async def delete_log(log_id: int, store: AppLogStore = Depends(get_log_store)):
    """
    Delete one entry.

    A missing id is not an error: the body still says ``deleted: false``, with
    a 404 status so HTTP clients can tell the two cases apart.
    """
    deleted = await store.delete_by_id(log_id)
    if not deleted:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"id": log_id, "deleted": False},
        )
    logger.info("App log %s deleted", log_id)
    return {"id": log_id, "deleted": True}
