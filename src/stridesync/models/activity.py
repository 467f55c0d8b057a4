"""Activity record model: one row per provider activity per owner."""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class CalorieSource(str, Enum):
    NONE = "none"
    SUMMARY = "summary"  # list endpoint
    DETAIL = "detail"  # per-activity detail endpoint
    PRESERVED = "preserved"  # carried over from the stored record


class TaggedBy(str, Enum):
    AUTO = "auto"
    USER = "user"


class ActivityRecord(SQLModel, table=True):
    """
    Canonical, reconciled copy of a provider activity.

    (owner_id, activity_id) is the primary key, so re-syncing an activity
    always updates the existing row instead of inserting a duplicate.
    """

    owner_id: str = Field(primary_key=True)
    activity_id: str = Field(primary_key=True)  # provider-assigned id

    name: str = ""
    activity_type: str = ""  # "Run", "Ride", "Walk", "TrailRun", ...
    # Null only for stub rows created by a user tag before the first sync
    start_time_utc: Optional[datetime] = Field(default=None, index=True)
    activity_date: Optional[date] = None  # calendar day in the owner's local time

    distance_km: float = 0.0
    moving_time_seconds: int = 0
    elapsed_time_seconds: int = 0
    elevation_gain_m: float = 0.0
    average_speed: Optional[float] = None  # m/s
    max_speed: Optional[float] = None

    # Heart rate summary (absent when the device has no sensor)
    has_heartrate: bool = False
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None

    calories: int = 0
    calorie_source: str = CalorieSource.NONE.value
    last_calorie_fetch: Optional[datetime] = None

    # Training-type tag
    is_run_activity: bool = False
    run_tag: Optional[str] = None
    tagged_by: Optional[str] = None
    user_override: bool = False
    tag_confidence: Optional[float] = None
    tagged_at: Optional[datetime] = None

    # Detail-call data
    has_detailed_analysis: bool = False
    splits_metric_json: Optional[str] = None  # per-kilometer splits as returned by the provider
    gear_id: Optional[str] = None
    gear_name: Optional[str] = None
    suffer_score: Optional[float] = None

    fetched_at: Optional[datetime] = None


def is_run_type(activity_type: Optional[str]) -> bool:
    """Runs are any activity type containing "run" (Run, TrailRun, VirtualRun)."""
    return "run" in (activity_type or "").lower()
