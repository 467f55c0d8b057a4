"""Instant-load path: serve a time window straight from the activity store."""
import logging
from datetime import datetime, time, timedelta
from typing import List, Optional, Tuple

from stridesync.models.activity import ActivityRecord
from stridesync.sync.store import ActivityStore, utcnow

logger = logging.getLogger(__name__)


def window_bounds(window_days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Return (after, before) for a window of `window_days` ending now.

    `after` is midnight UTC `window_days` ago; `before` is the end of today,
    so activities recorded later today still fall inside the window.
    """
    now = now or utcnow()
    after = datetime.combine((now - timedelta(days=max(0, window_days))).date(), time.min)
    before = datetime.combine(now.date(), time.max)
    return after, before


def read_cached(
    store: ActivityStore,
    owner_id: str,
    window_days: int,
    now: Optional[datetime] = None,
) -> Optional[List[ActivityRecord]]:
    """
    Read the owner's stored activities for the window without touching the provider.

    Returns:
        Records sorted newest first, deduplicated by activity id, or None
        when nothing is stored for the window. None (rather than []) lets
        callers tell "never synced" apart and decide to trigger a refresh.

    Raises:
        StoreUnavailable: if the store can't be read.
    """
    after, before = window_bounds(window_days, now)
    rows = store.query(owner_id, after, before)

    seen = set()
    records = []
    for row in rows:
        if row.activity_id in seen:
            continue
        seen.add(row.activity_id)
        records.append(row)

    if not records:
        logger.info("Cache miss for owner %s (%d days)", owner_id, window_days)
        return None

    records.sort(key=lambda r: r.start_time_utc, reverse=True)
    logger.info("Cache hit for owner %s: %d activities", owner_id, len(records))
    return records
