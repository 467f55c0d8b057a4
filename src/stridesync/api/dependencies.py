"""FastAPI dependencies shared by the route modules."""
from functools import lru_cache

from stridesync.db.engine import get_engine
from stridesync.sync.service import ActivitySyncService, build_sync_service
from stridesync.sync.store import ActivityStore


def get_store() -> ActivityStore:
    return ActivityStore(get_engine())


@lru_cache(maxsize=1)
def get_sync_service() -> ActivitySyncService:
    """One service per process, so the cached access token and HTTP session are reused."""
    return build_sync_service(get_engine())
