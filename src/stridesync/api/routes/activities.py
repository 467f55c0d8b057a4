"""Activity query routes."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stridesync.api.dependencies import get_store, get_sync_service
from stridesync.config import get_settings
from stridesync.models.activity import ActivityRecord
from stridesync.sync.service import ActivitySyncService, CacheMiss, FetchMode, owner_locks
from stridesync.sync.store import ActivityStore, StoreUnavailable

router = APIRouter()


@router.get("/")
async def list_activities(
    owner_id: Optional[str] = None,
    days: Optional[int] = Query(default=None, ge=1, le=365),
    mode: FetchMode = FetchMode.CACHED,
    service: ActivitySyncService = Depends(get_sync_service),
):
    """
    Activities for the window, newest first.

    mode=cached reads the store only and answers 404 with
    recommend_refresh=true when nothing is stored yet. mode=refresh syncs
    with the provider first (serialized per owner).
    """
    settings = get_settings()
    owner_id = owner_id or settings.default_owner_id
    days = days or settings.default_window_days
    try:
        if mode == FetchMode.REFRESH:
            async with owner_locks.lock_for(owner_id):
                result = await service.get_activities(owner_id, days, mode)
        else:
            result = await service.get_activities(owner_id, days, mode)
    except CacheMiss as exc:
        raise HTTPException(
            status_code=404,
            detail={"error": str(exc), "recommend_refresh": True},
        )
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return {
        "records": [r.model_dump(mode="json") for r in result.records],
        "source": result.source.value,
        "enrichment_calls_used": result.enrichment_calls_used,
        "enrichment_failures": result.enrichment_failures,
        "throttled": result.throttled,
        "timed_out": result.timed_out,
    }


@router.get("/{activity_id}", response_model=ActivityRecord)
def get_activity(
    activity_id: str,
    owner_id: Optional[str] = None,
    store: ActivityStore = Depends(get_store),
):
    """Fetch a single stored activity by provider id."""
    owner_id = owner_id or get_settings().default_owner_id
    try:
        record = store.get(owner_id, activity_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if not record:
        raise HTTPException(status_code=404, detail="Activity not found")
    return record
