"""
Status Router

Public system status, the persistent threat level and admin broadcasts.

API endpoints (under the configured API prefix):
  GET    /status
  GET    /status/threat-level
  PUT    /status/threat-level
  GET    /status/broadcasts
  POST   /status/broadcasts
  DELETE /status/broadcasts/{broadcast_id}

A threat-level change is written to the application log and announced on the
configured notification channels in the background.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status

from bordersafety.core.config import Settings
from bordersafety.core.database import utcnow
from bordersafety.core.deps import (
    client_ip,
    get_broadcast_store,
    get_log_store,
    get_notifiers,
    get_settings,
    get_threat_store,
)
from bordersafety.core.exceptions import NotFoundError, StorageError
from bordersafety.schemas.status import (
    BroadcastCreate,
    SystemStatusResponse,
    ThreatLevelResponse,
    ThreatLevelUpdate,
)
from bordersafety.services.app_log_store import AppLogStore
from bordersafety.services.broadcasts import BroadcastStore
from bordersafety.services.notifier import Notifier, send_multi_channel
from bordersafety.services.threat_level import ThreatLevelStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/status", tags=["status"])

DISCLAIMER = "This is an approximate risk model. Always follow official civil defence guidance."


@router.get("", response_model=SystemStatusResponse)
async def system_status(
    threat_store: ThreatLevelStore = Depends(get_threat_store),
    app_settings: Settings = Depends(get_settings),
):
    current = await threat_store.get_current()
    return {
        "status": "operational",
        "version": app_settings.app_version,
        "timestamp": utcnow(),
        "threat_level": current.level.value,
        "disclaimer": DISCLAIMER,
    }


@router.get("/threat-level", response_model=ThreatLevelResponse)
async def get_threat_level(threat_store: ThreatLevelStore = Depends(get_threat_store)):
    return (await threat_store.get_current()).to_dict()


@router.put("/threat-level", response_model=ThreatLevelResponse)
async def update_threat_level(
    body: ThreatLevelUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    threat_store: ThreatLevelStore = Depends(get_threat_store),
    log_store: AppLogStore = Depends(get_log_store),
    notifiers: list[Notifier] = Depends(get_notifiers),
):
    """
    Set the current threat level.

    Unknown levels are rejected with 400 and leave the stored level as it was.
    Once the level is stored the request succeeds even if the audit entry
    cannot be written.
    """
    change = await threat_store.change_level(body.level)
    state, previous = change.current, change.previous
    try:
        await log_store.append(
            "INFO",
            "STATUS",
            f"Threat level changed to {state.level.value}",
            ip=client_ip(request),
            metadata={"previous": previous.level.value, "level": state.level.value},
        )
    except StorageError as e:
        logger.error("Threat level set to %s but audit entry failed: %s", state.level.value, e.message)
    if notifiers and change.changed:
        background_tasks.add_task(
            send_multi_channel,
            notifiers,
            f"Border threat level is now {state.level.value} (was {previous.level.value})",
            title="Threat level update",
            subject=f"Threat level {state.level.value}",
        )
    return {**state.to_dict(), "message": f"Threat level updated to {state.level.value}"}


@router.get("/broadcasts")
async def list_broadcasts(
    limit: int = Query(100, ge=1, le=500),
    store: BroadcastStore = Depends(get_broadcast_store),
):
    broadcasts = await store.list(limit=limit)
    return {
        "success": True,
        "count": len(broadcasts),
        "broadcasts": [b.to_dict() for b in broadcasts],
    }


@router.post("/broadcasts", status_code=status.HTTP_201_CREATED)
async def create_broadcast(
    body: BroadcastCreate,
    store: BroadcastStore = Depends(get_broadcast_store),
):
    broadcast = await store.create(body.message, from_user=body.from_user)
    return {"success": True, "broadcast": broadcast.to_dict()}


@router.delete("/broadcasts/{broadcast_id}")
async def delete_broadcast(
    broadcast_id: str,
    store: BroadcastStore = Depends(get_broadcast_store),
):
    if not await store.delete(broadcast_id):
        raise NotFoundError("Broadcast not found", detail=broadcast_id)
    return {"success": True, "message": "Broadcast deleted"}
