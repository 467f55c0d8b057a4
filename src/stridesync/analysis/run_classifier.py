"""
Run type classification from summary metrics.

Given an activity's distance, moving time and (optional) average heart
rate, assigns one of a fixed set of training-type tags with a confidence
score. Pure and deterministic: no I/O, no clock.

Public API:
  classify(activity)          → RunClassification
  classify_metrics(distance_km, moving_time_seconds, average_heartrate) → RunClassification
  validate_tag(tag)           → RunTag (raises InvalidTag)

RunTag enum:
  EASY       — default aerobic run
  TEMPO      — sustained moderately hard effort
  INTERVALS  — fast, short-to-moderate distance
  LONG       — distance-driven aerobic run
  RECOVERY   — very easy pace or low heart rate, short distance
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple


class RunTag(str, Enum):
    EASY = "easy"
    TEMPO = "tempo"
    INTERVALS = "intervals"
    LONG = "long"
    RECOVERY = "recovery"


class InvalidTag(ValueError):
    """Raised when a caller passes a tag outside RunTag."""


@dataclass(frozen=True)
class RunClassification:
    """Classification result for one run."""
    tag: RunTag
    confidence: float  # 0.0–1.0
    reasoning: str


@dataclass(frozen=True)
class _Metrics:
    distance_km: float
    pace_min_per_km: float
    hr: Optional[float]


# Rules applied in priority order; the first match wins.
_RULES: List[Tuple[RunTag, float, str, Callable[[_Metrics], bool]]] = [
    (RunTag.LONG, 0.9, "distance >= 15 km",
     lambda m: m.distance_km >= 15),
    (RunTag.LONG, 0.8, "distance >= 10 km at pace slower than 5:30/km",
     lambda m: m.distance_km >= 10 and m.pace_min_per_km > 5.5),
    (RunTag.RECOVERY, 0.8, "distance <= 5 km at pace slower than 6:30/km",
     lambda m: m.distance_km <= 5 and m.pace_min_per_km > 6.5),
    (RunTag.RECOVERY, 0.7, "average HR below 140 over <= 8 km",
     lambda m: m.hr is not None and m.hr < 140 and m.distance_km <= 8),
    (RunTag.INTERVALS, 0.8, "pace faster than 4:00/km over <= 10 km",
     lambda m: m.pace_min_per_km < 4.0 and m.distance_km <= 10),
    (RunTag.INTERVALS, 0.7, "average HR above 170 over <= 8 km",
     lambda m: m.hr is not None and m.hr > 170 and m.distance_km <= 8),
    (RunTag.TEMPO, 0.8, "pace faster than 5:00/km over 5-12 km",
     lambda m: m.pace_min_per_km < 5.0 and 5 <= m.distance_km <= 12),
    (RunTag.TEMPO, 0.7, "average HR 155-170 over >= 5 km",
     lambda m: m.hr is not None and 155 <= m.hr <= 170 and m.distance_km >= 5),
]


def classify_metrics(
    distance_km: float,
    moving_time_seconds: float,
    average_heartrate: Optional[float] = None,
) -> RunClassification:
    """
    Classify a run from its summary metrics.

    A missing or zero distance or moving time can't produce a pace, so the
    run defaults to EASY with low confidence.

    Args:
        distance_km: Total distance in kilometers.
        moving_time_seconds: Moving time in seconds.
        average_heartrate: Average HR in bpm, or None without a sensor.
            Zero is treated as unknown.

    Returns:
        RunClassification with tag, confidence and the matching rule.
    """
    if not distance_km or distance_km <= 0 or not moving_time_seconds or moving_time_seconds <= 0:
        return RunClassification(RunTag.EASY, 0.3, "no distance or moving time to derive pace")

    metrics = _Metrics(
        distance_km=distance_km,
        pace_min_per_km=(moving_time_seconds / 60.0) / distance_km,
        hr=average_heartrate or None,
    )
    for tag, confidence, reasoning, matches in _RULES:
        if matches(metrics):
            return RunClassification(tag, confidence, reasoning)
    return RunClassification(RunTag.EASY, 0.6, "no specific rule matched")


def classify(activity) -> RunClassification:
    """
    Classify an activity record (or anything with the same attributes).

    Args:
        activity: Object with distance_km, moving_time_seconds and
            average_heartrate attributes (ActivityRecord, ProviderSummary).
    """
    return classify_metrics(
        activity.distance_km,
        activity.moving_time_seconds,
        getattr(activity, "average_heartrate", None),
    )


def validate_tag(tag: str) -> RunTag:
    """Return the RunTag for a user-supplied string, or raise InvalidTag."""
    try:
        return RunTag((tag or "").strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in RunTag)
        raise InvalidTag(f"Invalid run tag: {tag!r}. Valid tags: {valid}") from None
