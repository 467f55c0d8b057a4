"""Tests for run classification rules and tag validation."""
import pytest

from stridesync.analysis.run_classifier import (
    InvalidTag,
    RunClassification,
    RunTag,
    classify,
    classify_metrics,
    validate_tag,
)
from stridesync.models.activity import ActivityRecord


def _pace_seconds(distance_km: float, pace_min_per_km: float) -> float:
    """Moving time in seconds for a given distance at a given pace."""
    return distance_km * pace_min_per_km * 60


# ─── Reference cases ──────────────────────────────────────────────────────────

class TestReferenceCases:
    def test_eighteen_km_is_long(self):
        result = classify_metrics(18, 5400)
        assert result.tag == RunTag.LONG
        assert result.confidence == pytest.approx(0.9)

    def test_slow_six_km_low_hr_is_recovery(self):
        result = classify_metrics(6, 2700, average_heartrate=130)
        assert result.tag == RunTag.RECOVERY
        assert result.confidence in (pytest.approx(0.7), pytest.approx(0.8))

    def test_fast_eight_km_is_intervals(self):
        # 1800 s over 8 km = 3.75 min/km
        result = classify_metrics(8, 1800)
        assert result.tag == RunTag.INTERVALS
        assert result.confidence == pytest.approx(0.8)


# ─── Rule order ───────────────────────────────────────────────────────────────

class TestRuleOrder:
    def test_long_by_distance_beats_fast_pace(self):
        result = classify_metrics(15, _pace_seconds(15, 3.9))
        assert result.tag == RunTag.LONG
        assert result.confidence == pytest.approx(0.9)

    def test_ten_km_slow_is_long(self):
        result = classify_metrics(10, _pace_seconds(10, 5.6))
        assert (result.tag, result.confidence) == (RunTag.LONG, 0.8)

    def test_ten_km_at_exactly_five_thirty_is_not_long(self):
        """Rule 2 needs pace strictly slower than 5.5 min/km."""
        result = classify_metrics(12, 66 * 60)
        assert result.tag != RunTag.LONG

    def test_short_slow_is_recovery(self):
        result = classify_metrics(4, _pace_seconds(4, 7.0))
        assert (result.tag, result.confidence) == (RunTag.RECOVERY, 0.8)

    def test_low_hr_recovery_needs_short_distance(self):
        result = classify_metrics(9, _pace_seconds(9, 6.0), average_heartrate=130)
        assert result.tag == RunTag.EASY

    def test_high_hr_short_run_is_intervals(self):
        result = classify_metrics(6, _pace_seconds(6, 5.2), average_heartrate=175)
        assert (result.tag, result.confidence) == (RunTag.INTERVALS, 0.7)

    def test_fast_mid_distance_is_tempo(self):
        result = classify_metrics(10, _pace_seconds(10, 4.6))
        assert (result.tag, result.confidence) == (RunTag.TEMPO, 0.8)

    def test_fast_pace_over_twelve_km_is_not_tempo(self):
        result = classify_metrics(13, _pace_seconds(13, 4.6))
        assert result.tag == RunTag.EASY

    def test_tempo_by_heart_rate(self):
        result = classify_metrics(7, _pace_seconds(7, 5.3), average_heartrate=160)
        assert (result.tag, result.confidence) == (RunTag.TEMPO, 0.7)

    def test_default_is_easy(self):
        result = classify_metrics(7, _pace_seconds(7, 5.8))
        assert (result.tag, result.confidence) == (RunTag.EASY, 0.6)

    def test_zero_heart_rate_treated_as_unknown(self):
        """A 0 bpm average (no sensor) must not trigger the low-HR recovery rule."""
        result = classify_metrics(7, _pace_seconds(7, 5.8), average_heartrate=0)
        assert result.tag == RunTag.EASY


# ─── Guards ───────────────────────────────────────────────────────────────────

class TestGuards:
    def test_zero_distance_is_low_confidence_easy(self):
        result = classify_metrics(0, 1800)
        assert (result.tag, result.confidence) == (RunTag.EASY, 0.3)

    def test_zero_moving_time_is_low_confidence_easy(self):
        result = classify_metrics(5, 0)
        assert (result.tag, result.confidence) == (RunTag.EASY, 0.3)

    def test_result_carries_reasoning(self):
        result = classify_metrics(18, 5400)
        assert isinstance(result, RunClassification)
        assert "15" in result.reasoning

    def test_deterministic(self):
        assert classify_metrics(8, 1800, 150) == classify_metrics(8, 1800, 150)


# ─── classify(activity) ───────────────────────────────────────────────────────

class TestClassifyActivity:
    def test_reads_record_attributes(self):
        record = ActivityRecord(
            owner_id="o", activity_id="1", distance_km=6.0,
            moving_time_seconds=2700, average_heartrate=130.0,
        )
        assert classify(record).tag == RunTag.RECOVERY

    def test_missing_heart_rate_attribute(self):
        class Bare:
            distance_km = 18.0
            moving_time_seconds = 5400

        assert classify(Bare()).tag == RunTag.LONG


# ─── validate_tag ─────────────────────────────────────────────────────────────

class TestValidateTag:
    @pytest.mark.parametrize("tag", ["easy", "tempo", "intervals", "long", "recovery"])
    def test_accepts_fixed_set(self, tag):
        assert validate_tag(tag).value == tag

    def test_normalizes_case_and_whitespace(self):
        assert validate_tag("  Tempo ") == RunTag.TEMPO

    @pytest.mark.parametrize("tag", ["interval", "race", "", "fartlek"])
    def test_rejects_unknown(self, tag):
        with pytest.raises(InvalidTag):
            validate_tag(tag)

    def test_invalid_tag_is_value_error(self):
        with pytest.raises(ValueError, match="Valid tags"):
            validate_tag("sprint")
