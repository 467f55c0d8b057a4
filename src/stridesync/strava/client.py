"""
Async wrapper around the Strava v3 REST API.

requests is synchronous; calls run in the default thread pool executor
so they don't block the asyncio event loop.

Every call takes the bearer credential explicitly. Obtaining and
refreshing that credential is StravaAuth's job.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from stridesync.strava.payloads import (
    ProviderDetail,
    ProviderSummary,
    RateLimitUsage,
    parse_detail,
    parse_rate_limit,
    parse_summary,
)

logger = logging.getLogger(__name__)

STRAVA_API_BASE = "https://www.strava.com/api/v3"
MAX_PAGE_SIZE = 200  # Strava caps per_page at 200


# ── Exceptions ────────────────────────────────────────────────────────────────

class ProviderError(RuntimeError):
    """Base class for failures talking to the provider."""


class ProviderUnavailable(ProviderError):
    """Network failure, auth rejection or 5xx on the list call."""


class ProviderThrottled(ProviderError):
    """The provider answered 429 Too Many Requests."""

    def __init__(self, message: str, rate_limit: Optional[RateLimitUsage] = None):
        super().__init__(message)
        self.rate_limit = rate_limit


class EnrichmentFetchFailed(ProviderError):
    """A single detail call failed with a non-429 error."""

    def __init__(self, activity_id: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.activity_id = activity_id
        self.status_code = status_code


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass
class ActivityPage:
    activities: List[ProviderSummary]
    rate_limit: Optional[RateLimitUsage] = None


@dataclass
class DetailResponse:
    detail: ProviderDetail
    rate_limit: Optional[RateLimitUsage] = None


# ── Client ────────────────────────────────────────────────────────────────────

class StravaClient:
    """
    Thin async wrapper over a requests.Session.

    Usage:
        client = StravaClient()
        page = await client.list_activities(token, after, before)
        detail = await client.get_activity_detail(token, page.activities[0].activity_id)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str = STRAVA_API_BASE,
        timeout: float = 30.0,
    ):
        """
        Args:
            session: requests.Session to reuse. Defaults to a new session.
            base_url: API root, overridable for tests and proxies.
            timeout: Per-request timeout in seconds.
        """
        self._session = session or requests.Session()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _run(self, fn, *args, **kwargs):
        """Run a blocking requests call in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def _get(self, credential: str, path: str, params: Optional[dict] = None) -> requests.Response:
        return await self._run(
            self._session.get,
            f"{self._base_url}{path}",
            headers={"Authorization": f"Bearer {credential}"},
            params=params,
            timeout=self._timeout,
        )

    async def list_activities(
        self,
        credential: str,
        after: int,
        before: int,
        per_page: int = MAX_PAGE_SIZE,
    ) -> ActivityPage:
        """
        Fetch one page of the owner's activities between two epoch seconds.

        Raises:
            ProviderThrottled: on 429.
            ProviderUnavailable: on network errors and any other non-2xx.
        """
        params = {"after": after, "before": before, "per_page": min(per_page, MAX_PAGE_SIZE), "page": 1}
        try:
            resp = await self._get(credential, "/athlete/activities", params=params)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"Activity list request failed: {exc}") from exc

        rate_limit = parse_rate_limit(resp.headers)
        if resp.status_code == 429:
            raise ProviderThrottled("Activity list rate limited (429)", rate_limit)
        if not resp.ok:
            raise ProviderUnavailable(f"Activity list returned HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderUnavailable(f"Activity list body is not JSON: {exc}") from exc

        activities = []
        for raw in payload:
            try:
                activities.append(parse_summary(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed activity %s: %s", raw.get("id"), exc)

        if rate_limit:
            logger.info(
                "Rate limit: %d/%d (15min), %d/%d (daily)",
                rate_limit.short_usage, rate_limit.short_limit,
                rate_limit.daily_usage, rate_limit.daily_limit,
            )
        return ActivityPage(activities=activities, rate_limit=rate_limit)

    async def get_activity_detail(self, credential: str, activity_id: str) -> DetailResponse:
        """
        Fetch the detailed representation of one activity.

        Raises:
            ProviderThrottled: on 429.
            EnrichmentFetchFailed: on network errors, other non-2xx, or an
                unparseable body.
        """
        try:
            resp = await self._get(credential, f"/activities/{activity_id}")
        except requests.RequestException as exc:
            raise EnrichmentFetchFailed(activity_id, f"Detail request failed: {exc}") from exc

        rate_limit = parse_rate_limit(resp.headers)
        if resp.status_code == 429:
            raise ProviderThrottled(f"Detail for {activity_id} rate limited (429)", rate_limit)
        if not resp.ok:
            raise EnrichmentFetchFailed(
                activity_id,
                f"Detail for {activity_id} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            detail = parse_detail(resp.json())
        except (KeyError, TypeError, ValueError) as exc:
            raise EnrichmentFetchFailed(
                activity_id, f"Detail for {activity_id} unparseable: {exc}", status_code=resp.status_code
            ) from exc
        return DetailResponse(detail=detail, rate_limit=rate_limit)
