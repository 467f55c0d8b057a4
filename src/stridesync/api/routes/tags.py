"""Run tagging routes."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from stridesync.analysis.run_classifier import InvalidTag
from stridesync.api.dependencies import get_store, get_sync_service
from stridesync.config import get_settings
from stridesync.models.activity import ActivityRecord
from stridesync.sync.service import ActivitySyncService
from stridesync.sync.store import ActivityStore, StoreUnavailable

router = APIRouter()


class TagRequest(BaseModel):
    activity_id: str
    tag: str
    owner_id: str = ""  # empty → configured default owner


@router.post("/", response_model=ActivityRecord)
def tag_activity(request: TagRequest, service: ActivitySyncService = Depends(get_sync_service)):
    """Set a user tag. It overrides automatic classification permanently."""
    owner_id = request.owner_id or get_settings().default_owner_id
    try:
        return service.set_user_tag(owner_id, request.activity_id, request.tag)
    except InvalidTag as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/")
def list_tags(
    owner_id: Optional[str] = None,
    store: ActivityStore = Depends(get_store),
):
    """All tagged activities for the owner, keyed by activity id."""
    owner_id = owner_id or get_settings().default_owner_id
    try:
        records = store.tagged_runs(owner_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return {
        r.activity_id: {
            "run_tag": r.run_tag,
            "tagged_by": r.tagged_by,
            "user_override": r.user_override,
            "confidence": r.tag_confidence,
            "tagged_at": r.tagged_at.isoformat() if r.tagged_at else None,
        }
        for r in records
    }
