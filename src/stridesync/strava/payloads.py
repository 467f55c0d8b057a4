"""
Strava API response parsing.

Converts raw dicts from the Strava v3 API into typed intermediate structs
so the reconciler works on named optional fields instead of probing
loosely shaped payloads. No DB or network access here.

Strava uses two response shapes for activities:

  GET /athlete/activities list items ("SummaryActivity"):
    - distance in meters, times in seconds
    - calories usually absent; gear_id present, gear object absent

  GET /activities/{id} ("DetailedActivity"):
    - everything in the summary plus calories, splits_metric and a
      nested gear object {"id", "name", ...}

Rate-limit usage comes back on every response in two headers, each a
"short-window,daily" pair:

    X-RateLimit-Usage: 31,482
    X-RateLimit-Limit: 100,1000

Newer apps also get X-ReadRateLimit-* headers with the read-only budget;
those are preferred when present because every call made here is a read.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class RateLimitUsage:
    """Provider usage counters from one response."""
    short_usage: int
    daily_usage: int
    short_limit: int
    daily_limit: int

    @property
    def short_remaining(self) -> int:
        return self.short_limit - self.short_usage

    @property
    def daily_remaining(self) -> int:
        return self.daily_limit - self.daily_usage

    def near_exhaustion(self, min_remaining: int) -> bool:
        """True when either window has fewer than min_remaining calls left."""
        return self.short_remaining < min_remaining or self.daily_remaining < min_remaining


@dataclass
class ProviderSummary:
    """One activity from the list endpoint."""
    activity_id: str
    name: str
    activity_type: str
    start_time_utc: datetime
    activity_date: date
    distance_km: float
    moving_time_seconds: int
    elapsed_time_seconds: int
    elevation_gain_m: float = 0.0
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    has_heartrate: bool = False
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    calories: int = 0
    gear_id: Optional[str] = None
    suffer_score: Optional[float] = None


@dataclass
class ProviderDetail:
    """Fields only the per-activity detail endpoint returns reliably."""
    activity_id: str
    calories: int = 0
    splits_metric: List[Dict[str, Any]] = field(default_factory=list)
    gear_id: Optional[str] = None
    gear_name: Optional[str] = None
    suffer_score: Optional[float] = None


def _parse_strava_datetime(s: str) -> datetime:
    """Parse "2025-01-15T07:30:00Z" into a naive UTC datetime."""
    s = s.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _activity_day(raw: Mapping[str, Any], start_utc: datetime) -> date:
    """Calendar day in the athlete's local time (start_date_local), else UTC."""
    local = raw.get("start_date_local")
    if local:
        # start_date_local is local wall-clock time mislabelled with a Z suffix
        return datetime.fromisoformat(local.strip().rstrip("Z").split("+")[0]).date()
    return start_utc.date()


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    return int(round(float(value)))


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def parse_summary(raw: Mapping[str, Any]) -> ProviderSummary:
    """
    Parse a list-endpoint activity into a ProviderSummary.

    Raises:
        KeyError: if the activity has no id or start_date.
    """
    start_utc = _parse_strava_datetime(raw["start_date"])
    return ProviderSummary(
        activity_id=str(raw["id"]),
        name=raw.get("name") or "",
        # sport_type is the finer-grained successor of type ("TrailRun" vs "Run")
        activity_type=raw.get("type") or raw.get("sport_type") or "",
        start_time_utc=start_utc,
        activity_date=_activity_day(raw, start_utc),
        distance_km=float(raw.get("distance") or 0.0) / 1000.0,
        moving_time_seconds=_as_int(raw.get("moving_time")),
        elapsed_time_seconds=_as_int(raw.get("elapsed_time")),
        elevation_gain_m=float(raw.get("total_elevation_gain") or 0.0),
        average_speed=_as_float(raw.get("average_speed")),
        max_speed=_as_float(raw.get("max_speed")),
        has_heartrate=bool(raw.get("has_heartrate")),
        average_heartrate=_as_float(raw.get("average_heartrate")),
        max_heartrate=_as_float(raw.get("max_heartrate")),
        calories=max(0, _as_int(raw.get("calories"))),
        gear_id=raw.get("gear_id") or None,
        suffer_score=_as_float(raw.get("suffer_score")),
    )


def parse_detail(raw: Mapping[str, Any]) -> ProviderDetail:
    """Parse a detail-endpoint activity into a ProviderDetail."""
    gear = raw.get("gear") or {}
    return ProviderDetail(
        activity_id=str(raw["id"]),
        calories=max(0, _as_int(raw.get("calories"))),
        splits_metric=list(raw.get("splits_metric") or []),
        gear_id=raw.get("gear_id") or gear.get("id") or None,
        gear_name=gear.get("name") or None,
        suffer_score=_as_float(raw.get("suffer_score")),
    )


def _parse_pair(value: Optional[str]) -> Optional[List[int]]:
    if not value:
        return None
    try:
        parts = [int(p.strip()) for p in value.split(",")]
    except ValueError:
        return None
    return parts[:2] if len(parts) >= 2 else None


def parse_rate_limit(headers: Mapping[str, str]) -> Optional[RateLimitUsage]:
    """Read usage/limit headers; None if the response carried none."""
    for prefix in ("X-ReadRateLimit", "X-RateLimit"):
        usage = _parse_pair(headers.get(f"{prefix}-Usage"))
        limit = _parse_pair(headers.get(f"{prefix}-Limit"))
        if usage and limit:
            return RateLimitUsage(
                short_usage=usage[0],
                daily_usage=usage[1],
                short_limit=limit[0],
                daily_limit=limit[1],
            )
    return None
