"""
ActivitySyncService: orchestrates provider → store refreshes.

Flow for one refresh:
  1. Create SyncLog (status="running")
  2. Obtain a bearer credential, list the window's activities (one call)
  3. Batch-read the stored records for the listed ids
  4. Pick enrichment candidates (no stored calories, calorie-bearing type),
     runs first, newest first
  5. Fetch details sequentially under the EnrichmentBudget; stop on 429,
     near-exhausted provider counters or the deadline
  6. Reconcile every listed activity (merge + classify)
  7. Batch-upsert, record enrichment usage, update SyncLog

If the credential or list call fails the cached window is returned
instead (status="cache_fallback"). A partial enrichment never fails the
refresh; it is logged as status="partial". Any other failure is logged as
status="error" and re-raised.

Concurrent refreshes for the same owner must be serialized by the caller;
OwnerLocks provides one asyncio.Lock per owner for that.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from stridesync.analysis.run_classifier import validate_tag
from stridesync.config import Settings, get_settings
from stridesync.models.activity import ActivityRecord, TaggedBy, is_run_type
from stridesync.strava.client import EnrichmentFetchFailed, ProviderError, ProviderThrottled
from stridesync.strava.payloads import ProviderDetail, ProviderSummary, RateLimitUsage
from stridesync.sync.budget import EnrichmentBudget
from stridesync.sync.cache_reader import read_cached, window_bounds
from stridesync.sync.reconciler import merge
from stridesync.sync.store import ActivityStore, StoreUnavailable, utcnow

logger = logging.getLogger(__name__)

# Activity types the provider computes calories for
CALORIE_BEARING_TYPES = ("run", "walk", "hike", "ride")


class DataSource(str, Enum):
    CACHE = "cache"
    PROVIDER = "provider"


class FetchMode(str, Enum):
    CACHED = "cached"
    REFRESH = "refresh"


class CacheMiss(LookupError):
    """Nothing is stored for the requested window; a refresh is recommended."""


@dataclass
class EnrichmentOutcome:
    details: Dict[str, ProviderDetail] = field(default_factory=dict)
    calls_used: int = 0
    failures: int = 0
    throttled: bool = False
    timed_out: bool = False


@dataclass
class SyncResult:
    records: List[ActivityRecord]
    source: DataSource
    enrichment_calls_used: int = 0
    enrichment_failures: int = 0
    throttled: bool = False
    timed_out: bool = False


class OwnerLocks:
    """One asyncio.Lock per owner, so overlapping refreshes don't interleave writes."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, owner_id: str) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks[owner_id] = asyncio.Lock()
        return lock


owner_locks = OwnerLocks()


def needs_enrichment(summary: ProviderSummary, previous: Optional[ActivityRecord]) -> bool:
    """True when no calories are stored and the provider computes them for this type."""
    if previous is not None and (previous.calories or 0) > 0:
        return False
    activity_type = (summary.activity_type or "").lower()
    return any(t in activity_type for t in CALORIE_BEARING_TYPES)


def select_enrichment_candidates(
    summaries: List[ProviderSummary],
    previous: Dict[str, ActivityRecord],
) -> List[ProviderSummary]:
    """Candidates ordered runs first, then most recent start first."""
    candidates = [s for s in summaries if needs_enrichment(s, previous.get(s.activity_id))]
    candidates.sort(key=lambda s: s.start_time_utc, reverse=True)
    candidates.sort(key=lambda s: not is_run_type(s.activity_type))  # stable: keeps recency within groups
    return candidates


def _deadline_passed(deadline: Optional[float]) -> bool:
    return deadline is not None and time.monotonic() >= deadline


async def _with_deadline(coro, deadline: Optional[float]):
    """Await coro, raising asyncio.TimeoutError if the deadline passes first."""
    if deadline is None:
        return await coro
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        coro.close()
        raise asyncio.TimeoutError()
    return await asyncio.wait_for(coro, remaining)


class ActivitySyncService:
    """Cache-first reads, budgeted refreshes and user tagging for one store."""

    def __init__(self, client, auth, store: ActivityStore, settings: Optional[Settings] = None):
        """
        Args:
            client: StravaClient instance (or AsyncMock in tests).
            auth: Credential provider with an async get_access_token().
            store: ActivityStore to read from and persist to.
            settings: Budget and timing settings. Defaults to get_settings().
        """
        self.client = client
        self.auth = auth
        self.store = store
        self.settings = settings or get_settings()

    # ─── Caller-facing API ────────────────────────────────────────────────────

    async def get_activities(
        self,
        owner_id: str,
        window_days: int,
        mode: FetchMode = FetchMode.CACHED,
    ) -> SyncResult:
        """
        Return the owner's activities for the window.

        mode=cached never touches the network; mode=refresh runs the full
        pipeline.

        Raises:
            CacheMiss: cached mode with nothing stored for the window.
            StoreUnavailable: if the store can't be read or written.
        """
        if FetchMode(mode) == FetchMode.REFRESH:
            return await self.refresh(
                owner_id, window_days, timeout=self.settings.refresh_timeout_seconds
            )

        records = read_cached(self.store, owner_id, window_days)
        if records is None:
            raise CacheMiss(f"No cached activities for {owner_id} in the last {window_days} days")
        return SyncResult(records=records, source=DataSource.CACHE)

    def set_user_tag(self, owner_id: str, activity_id: str, tag: str) -> ActivityRecord:
        """
        Tag an activity manually. The tag survives every later refresh.

        Creates a stub record when the activity isn't stored yet; the next
        refresh fills in the rest and keeps the tag.

        Raises:
            InvalidTag: if tag is outside the fixed tag set.
            StoreUnavailable: if the store can't be read or written.
        """
        run_tag = validate_tag(tag)
        record = self.store.get(owner_id, activity_id)
        if record is None:
            logger.info("Tagging unknown activity %s for %s; creating stub", activity_id, owner_id)
            record = ActivityRecord(owner_id=owner_id, activity_id=activity_id)

        record.run_tag = run_tag.value
        record.tagged_by = TaggedBy.USER.value
        record.user_override = True
        record.tag_confidence = 1.0
        record.tagged_at = utcnow()
        self.store.batch_upsert([record])
        logger.info("Tagged %s as %s for %s", activity_id, run_tag.value, owner_id)
        return record

    # ─── Refresh ──────────────────────────────────────────────────────────────

    async def refresh(
        self,
        owner_id: str,
        window_days: int,
        preserve_tags: bool = True,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """
        List, enrich, reconcile and persist the owner's activities for the window.

        Args:
            owner_id: Whose activities to sync.
            window_days: How many days back to list.
            preserve_tags: Keep stored automatic tags instead of re-classifying.
            timeout: Seconds allowed for provider calls. On expiry enrichment
                stops and whatever was listed is still reconciled and saved.

        Returns:
            SyncResult with records newest first.

        Raises:
            StoreUnavailable: if the store can't be read or written. When the
                failure happens at the final write, exc.records holds the
                reconciled records.
        """
        deadline = time.monotonic() + timeout if timeout else None
        now = utcnow()
        after, _ = window_bounds(window_days, now)
        log = self.store.start_sync_log(owner_id)
        logger.info("Refresh starting for %s (%d days)", owner_id, window_days)

        try:
            return await self._sync(log, owner_id, window_days, preserve_tags, now, after, deadline)
        except Exception as exc:
            self._record_failure(log, owner_id, exc)
            raise

    async def _sync(
        self,
        log,
        owner_id: str,
        window_days: int,
        preserve_tags: bool,
        now: datetime,
        after: datetime,
        deadline: Optional[float],
    ) -> SyncResult:
        try:
            credential = await _with_deadline(self.auth.get_access_token(), deadline)
            page = await _with_deadline(
                self.client.list_activities(
                    credential,
                    _epoch(after),
                    _epoch(now),
                    per_page=self.settings.list_page_size,
                ),
                deadline,
            )
        except (ProviderError, asyncio.TimeoutError) as exc:
            return self._fall_back_to_cache(log, owner_id, window_days, exc)

        summaries = _dedupe(page.activities)
        previous = self.store.get_by_ids(owner_id, [s.activity_id for s in summaries])

        candidates = select_enrichment_candidates(summaries, previous)
        budget = EnrichmentBudget(
            max_calls=self.settings.max_enrichment_calls,
            daily_limit=self.settings.daily_enrichment_limit,
            used_today=self.store.enrichment_calls_on(owner_id, now.date()),
        )
        logger.info(
            "%d activities listed, %d need enrichment, budget %d",
            len(summaries), len(candidates), budget.remaining,
        )
        outcome = await self.fetch_details(credential, candidates, budget, page.rate_limit, deadline)

        records = [
            merge(
                s,
                outcome.details.get(s.activity_id),
                previous.get(s.activity_id),
                owner_id=owner_id,
                fetched_at=now,
                preserve_tags=preserve_tags,
            )
            for s in summaries
        ]
        records.sort(key=lambda r: r.start_time_utc, reverse=True)

        try:
            self.store.batch_upsert(records)
            self.store.add_enrichment_calls(owner_id, now.date(), outcome.calls_used)
        except StoreUnavailable as exc:
            logger.error("Refresh for %s computed %d records but could not save them", owner_id, len(records))
            exc.records = records
            raise

        partial = outcome.throttled or outcome.timed_out or outcome.failures > 0
        self.store.finish_sync_log(
            log,
            status="partial" if partial else "success",
            activities_synced=len(records),
            enrichment_calls_used=outcome.calls_used,
            throttled=outcome.throttled,
        )
        logger.info(
            "Refresh complete for %s: %d activities, %d detail calls (%d failed)%s%s",
            owner_id, len(records), outcome.calls_used, outcome.failures,
            ", throttled" if outcome.throttled else "",
            ", timed out" if outcome.timed_out else "",
        )
        return SyncResult(
            records=records,
            source=DataSource.PROVIDER,
            enrichment_calls_used=outcome.calls_used,
            enrichment_failures=outcome.failures,
            throttled=outcome.throttled,
            timed_out=outcome.timed_out,
        )

    async def fetch_details(
        self,
        credential: str,
        candidates: List[ProviderSummary],
        budget: EnrichmentBudget,
        rate_limit: Optional[RateLimitUsage] = None,
        deadline: Optional[float] = None,
    ) -> EnrichmentOutcome:
        """
        Fetch detail records one at a time until candidates or budget run out.

        Stops early on 429, when the provider's remaining short-window or
        daily calls drop below settings.rate_limit_min_remaining, or when
        the deadline passes. Per-activity failures are counted and skipped.
        """
        outcome = EnrichmentOutcome()
        min_remaining = self.settings.rate_limit_min_remaining

        if rate_limit is not None and rate_limit.near_exhaustion(min_remaining):
            logger.warning(
                "Provider budget nearly spent (%d/%d short, %d/%d daily); skipping enrichment",
                rate_limit.short_usage, rate_limit.short_limit,
                rate_limit.daily_usage, rate_limit.daily_limit,
            )
            outcome.throttled = True
            return outcome

        for i, summary in enumerate(candidates):
            if i > 0 and self.settings.detail_call_delay_seconds > 0:
                await asyncio.sleep(self.settings.detail_call_delay_seconds)
            if _deadline_passed(deadline):
                outcome.timed_out = True
                break
            if not budget.try_acquire():
                break

            try:
                resp = await _with_deadline(
                    self.client.get_activity_detail(credential, summary.activity_id), deadline
                )
            except ProviderThrottled:
                logger.warning("Rate limited fetching %s; stopping enrichment", summary.activity_id)
                outcome.throttled = True
                break
            except EnrichmentFetchFailed as exc:
                logger.warning("Enrichment failed for %s: %s", summary.activity_id, exc)
                outcome.failures += 1
                continue
            except asyncio.TimeoutError:
                logger.warning("Deadline reached fetching %s; stopping enrichment", summary.activity_id)
                outcome.timed_out = True
                break
            finally:
                outcome.calls_used = budget.calls_used

            outcome.details[summary.activity_id] = resp.detail
            if resp.detail.calories > 0:
                logger.info("Calories for %s %s: %d", summary.activity_type, summary.activity_id, resp.detail.calories)
            else:
                logger.info("No calories for %s %s", summary.activity_type, summary.activity_id)

            if resp.rate_limit is not None and resp.rate_limit.near_exhaustion(min_remaining):
                logger.warning(
                    "Stopping enrichment: %d short-window, %d daily calls left",
                    resp.rate_limit.short_remaining, resp.rate_limit.daily_remaining,
                )
                outcome.throttled = True
                break

        return outcome

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _fall_back_to_cache(self, log, owner_id: str, window_days: int, exc: BaseException) -> SyncResult:
        reason = str(exc) or exc.__class__.__name__
        logger.warning("Provider unavailable for %s (%s); serving cache", owner_id, reason)
        records = read_cached(self.store, owner_id, window_days) or []
        self.store.finish_sync_log(log, status="cache_fallback", error_message=reason)
        return SyncResult(
            records=records,
            source=DataSource.CACHE,
            throttled=isinstance(exc, ProviderThrottled),
            timed_out=isinstance(exc, asyncio.TimeoutError),
        )

    def _record_failure(self, log, owner_id: str, exc: BaseException) -> None:
        logger.error("Refresh failed for %s: %s", owner_id, exc)
        try:
            self.store.finish_sync_log(log, status="error", error_message=str(exc) or exc.__class__.__name__)
        except StoreUnavailable as log_exc:
            logger.error("Could not record failed refresh for %s: %s", owner_id, log_exc)


def _epoch(naive_utc: datetime) -> int:
    """Epoch seconds for a naive UTC datetime."""
    return int(naive_utc.replace(tzinfo=timezone.utc).timestamp())


def _dedupe(summaries: List[ProviderSummary]) -> List[ProviderSummary]:
    """Drop repeated ids from the list response, keeping the first occurrence."""
    seen = set()
    unique = []
    for s in summaries:
        if s.activity_id in seen:
            continue
        seen.add(s.activity_id)
        unique.append(s)
    return unique


def build_sync_service(engine, settings: Optional[Settings] = None) -> ActivitySyncService:
    """Wire a service against the real Strava API using configured credentials."""
    from stridesync.strava.auth import StravaAuth
    from stridesync.strava.client import StravaClient

    settings = settings or get_settings()
    client = StravaClient(base_url=settings.strava_api_base, timeout=settings.http_timeout_seconds)
    auth = StravaAuth(
        settings.strava_client_id,
        settings.strava_client_secret,
        settings.strava_refresh_token,
        timeout=settings.http_timeout_seconds,
    )
    return ActivitySyncService(client=client, auth=auth, store=ActivityStore(engine), settings=settings)
