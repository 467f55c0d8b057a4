"""Sync trigger and status routes."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel

from stridesync.api.dependencies import get_store, get_sync_service
from stridesync.config import get_settings
from stridesync.sync.service import ActivitySyncService, owner_locks
from stridesync.sync.store import ActivityStore

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    owner_id: str = ""  # empty → configured default owner
    days: Optional[int] = None
    preserve_tags: bool = True


class SyncStatusResponse(BaseModel):
    status: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    activities_synced: Optional[int]
    enrichment_calls_used: Optional[int]
    throttled: Optional[bool]
    error_message: Optional[str]


async def _do_refresh(service: ActivitySyncService, owner_id: str, days: int, preserve_tags: bool) -> None:
    """Background task: refresh one owner, logging instead of raising."""
    try:
        async with owner_locks.lock_for(owner_id):
            await service.refresh(
                owner_id,
                days,
                preserve_tags=preserve_tags,
                timeout=service.settings.refresh_timeout_seconds,
            )
    except Exception as exc:
        logger.error("Background refresh for %s failed: %s", owner_id, exc)


@router.post("/trigger")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
    service: ActivitySyncService = Depends(get_sync_service),
):
    """
    Trigger an on-demand refresh.
    Returns immediately; the refresh runs in the background.
    """
    settings = get_settings()
    owner_id = request.owner_id or settings.default_owner_id
    days = request.days or settings.default_window_days
    background_tasks.add_task(_do_refresh, service, owner_id, days, request.preserve_tags)
    return {"message": "Sync started", "owner_id": owner_id, "days": days}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    owner_id: Optional[str] = Query(default=None),
    store: ActivityStore = Depends(get_store),
):
    """Return the status of the most recent refresh."""
    log = store.latest_sync_log(owner_id)
    if not log:
        return SyncStatusResponse(
            status="never_run",
            started_at=None,
            finished_at=None,
            activities_synced=None,
            enrichment_calls_used=None,
            throttled=None,
            error_message=None,
        )
    return SyncStatusResponse(
        status=log.status,
        started_at=log.started_at,
        finished_at=log.finished_at,
        activities_synced=log.activities_synced,
        enrichment_calls_used=log.enrichment_calls_used,
        throttled=log.throttled,
        error_message=log.error_message,
    )
