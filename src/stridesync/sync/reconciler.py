"""
Field-level merge of fresh provider data with the stored record.

Each field is resolved independently because a single provider response
is often incomplete in different fields on different calls. A whole-record
overwrite would let a cheap list response clobber detail data fetched in
an earlier cycle.

Precedence, highest first:

  calories            detail (>0) → summary (>0) → previous (>0, "preserved") → 0
  tag fields          previous user override, verbatim
                      → previous tag (preserve_tags) → fresh classification
  has_detailed_analysis  detail fetched now OR previous flag (never reverts)
  gear / suffer score / splits   detail → summary → previous (first present)
  descriptive fields  freshest summary
  ids / start time    immutable once set
"""
import json
from datetime import datetime
from typing import Any, Optional

from stridesync.analysis.run_classifier import classify
from stridesync.models.activity import ActivityRecord, CalorieSource, TaggedBy, is_run_type
from stridesync.strava.payloads import ProviderDetail, ProviderSummary


def _first_present(*values: Any) -> Any:
    """Return the first value that is not None (or an empty container)."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, (list, dict, str)) and not value:
            continue
        return value
    return None


def _resolve_calories(
    summary: ProviderSummary,
    detail: Optional[ProviderDetail],
    previous: Optional[ActivityRecord],
) -> tuple:
    if detail is not None and detail.calories > 0:
        return detail.calories, CalorieSource.DETAIL.value
    if summary.calories > 0:
        return summary.calories, CalorieSource.SUMMARY.value
    if previous is not None and (previous.calories or 0) > 0:
        return previous.calories, CalorieSource.PRESERVED.value
    return 0, CalorieSource.NONE.value


def _apply_tag(
    record: ActivityRecord,
    previous: Optional[ActivityRecord],
    fetched_at: datetime,
    preserve_tags: bool,
) -> None:
    if previous is not None and previous.user_override:
        _copy_tag(record, previous)
        return

    if preserve_tags and previous is not None and previous.run_tag:
        _copy_tag(record, previous)
        return

    if not record.is_run_activity:
        return

    result = classify(record)
    record.run_tag = result.tag.value
    record.tagged_by = TaggedBy.AUTO.value
    record.user_override = False
    record.tag_confidence = result.confidence
    unchanged = (
        previous is not None
        and previous.run_tag == record.run_tag
        and previous.tag_confidence == record.tag_confidence
    )
    record.tagged_at = previous.tagged_at if unchanged else fetched_at


def _copy_tag(record: ActivityRecord, previous: ActivityRecord) -> None:
    record.run_tag = previous.run_tag
    record.tagged_by = previous.tagged_by
    record.user_override = previous.user_override
    record.tag_confidence = previous.tag_confidence
    record.tagged_at = previous.tagged_at


def merge(
    summary: ProviderSummary,
    detail: Optional[ProviderDetail],
    previous: Optional[ActivityRecord],
    *,
    owner_id: str,
    fetched_at: datetime,
    preserve_tags: bool = True,
) -> ActivityRecord:
    """
    Produce the canonical record for one activity.

    Pure: never mutates `previous` and performs no I/O.

    Args:
        summary: Fresh list-endpoint data (authoritative for descriptive fields).
        detail: Detail-endpoint data fetched this cycle, or None.
        previous: The stored record, or None for a new activity.
        owner_id: Owner of the record.
        fetched_at: Sync timestamp stamped onto the record.
        preserve_tags: Keep a previously stored automatic tag instead of
            re-classifying. User overrides are kept regardless.

    Returns:
        A new, unsaved ActivityRecord.
    """
    calories, calorie_source = _resolve_calories(summary, detail, previous)

    splits = detail.splits_metric if detail is not None else None
    splits_json = json.dumps(splits) if splits else None

    record = ActivityRecord(
        owner_id=previous.owner_id if previous is not None else owner_id,
        activity_id=previous.activity_id if previous is not None else summary.activity_id,
        name=summary.name,
        activity_type=summary.activity_type,
        start_time_utc=_first_present(previous.start_time_utc if previous else None, summary.start_time_utc),
        activity_date=_first_present(previous.activity_date if previous else None, summary.activity_date),
        distance_km=summary.distance_km,
        moving_time_seconds=summary.moving_time_seconds,
        elapsed_time_seconds=summary.elapsed_time_seconds,
        elevation_gain_m=summary.elevation_gain_m,
        average_speed=summary.average_speed,
        max_speed=summary.max_speed,
        has_heartrate=summary.has_heartrate,
        average_heartrate=summary.average_heartrate,
        max_heartrate=summary.max_heartrate,
        calories=calories,
        calorie_source=calorie_source,
        last_calorie_fetch=fetched_at if detail is not None else (previous.last_calorie_fetch if previous else None),
        is_run_activity=is_run_type(summary.activity_type),
        has_detailed_analysis=detail is not None or bool(previous and previous.has_detailed_analysis),
        splits_metric_json=_first_present(splits_json, previous.splits_metric_json if previous else None),
        gear_id=_first_present(
            detail.gear_id if detail else None, summary.gear_id, previous.gear_id if previous else None
        ),
        gear_name=_first_present(detail.gear_name if detail else None, previous.gear_name if previous else None),
        suffer_score=_first_present(
            detail.suffer_score if detail else None, summary.suffer_score,
            previous.suffer_score if previous else None,
        ),
        fetched_at=fetched_at,
    )
    _apply_tag(record, previous, fetched_at, preserve_tags)
    return record


def summary_from_record(record: ActivityRecord) -> ProviderSummary:
    """
    Rebuild a ProviderSummary from a stored record.

    Used by detail-only passes (calorie recovery) so they go through the
    same merge() rules. Calories are left at 0 so a stored value resolves
    as "preserved" rather than being mistaken for fresh summary data.
    """
    return ProviderSummary(
        activity_id=record.activity_id,
        name=record.name,
        activity_type=record.activity_type,
        start_time_utc=record.start_time_utc,
        activity_date=record.activity_date,
        distance_km=record.distance_km,
        moving_time_seconds=record.moving_time_seconds,
        elapsed_time_seconds=record.elapsed_time_seconds,
        elevation_gain_m=record.elevation_gain_m,
        average_speed=record.average_speed,
        max_speed=record.max_speed,
        has_heartrate=record.has_heartrate,
        average_heartrate=record.average_heartrate,
        max_heartrate=record.max_heartrate,
        calories=0,
        gear_id=record.gear_id,
        suffer_score=record.suffer_score,
    )
