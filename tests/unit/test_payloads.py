"""Tests for Strava response parsing."""
from datetime import date, datetime

import pytest

from stridesync.strava.payloads import (
    RateLimitUsage,
    parse_detail,
    parse_rate_limit,
    parse_summary,
)

LIST_ITEM = {
    "id": 13456789012,
    "name": "Morning Run",
    "type": "Run",
    "sport_type": "Run",
    "start_date": "2025-01-15T07:30:00Z",
    "start_date_local": "2025-01-15T08:30:00Z",
    "distance": 10234.5,
    "moving_time": 3012,
    "elapsed_time": 3100,
    "total_elevation_gain": 55.2,
    "average_speed": 3.398,
    "max_speed": 4.9,
    "has_heartrate": True,
    "average_heartrate": 148.3,
    "max_heartrate": 171.0,
    "gear_id": "g123",
    "suffer_score": 41,
}


class TestParseSummary:
    def test_units_and_ids(self):
        s = parse_summary(LIST_ITEM)
        assert s.activity_id == "13456789012"
        assert s.distance_km == pytest.approx(10.2345)
        assert s.moving_time_seconds == 3012
        assert s.elapsed_time_seconds == 3100
        assert s.elevation_gain_m == pytest.approx(55.2)

    def test_start_time_is_naive_utc(self):
        s = parse_summary(LIST_ITEM)
        assert s.start_time_utc == datetime(2025, 1, 15, 7, 30)
        assert s.start_time_utc.tzinfo is None

    def test_activity_date_uses_local_day(self):
        raw = dict(LIST_ITEM, start_date="2025-01-15T23:30:00Z", start_date_local="2025-01-16T00:30:00Z")
        assert parse_summary(raw).activity_date == date(2025, 1, 16)

    def test_activity_date_falls_back_to_utc(self):
        raw = {k: v for k, v in LIST_ITEM.items() if k != "start_date_local"}
        assert parse_summary(raw).activity_date == date(2025, 1, 15)

    def test_heart_rate_and_gear(self):
        s = parse_summary(LIST_ITEM)
        assert s.has_heartrate is True
        assert s.average_heartrate == pytest.approx(148.3)
        assert s.gear_id == "g123"
        assert s.suffer_score == pytest.approx(41.0)

    def test_calories_absent_is_zero(self):
        assert parse_summary(LIST_ITEM).calories == 0

    def test_negative_calories_clamped(self):
        assert parse_summary(dict(LIST_ITEM, calories=-5)).calories == 0

    def test_sport_type_fallback(self):
        raw = dict(LIST_ITEM, type=None, sport_type="TrailRun")
        assert parse_summary(raw).activity_type == "TrailRun"

    def test_missing_optional_fields(self):
        s = parse_summary({"id": 1, "start_date": "2025-01-15T07:30:00Z"})
        assert s.distance_km == 0.0
        assert s.moving_time_seconds == 0
        assert s.average_heartrate is None
        assert s.gear_id is None

    def test_missing_id_raises(self):
        with pytest.raises(KeyError):
            parse_summary({"start_date": "2025-01-15T07:30:00Z"})

    def test_missing_start_date_raises(self):
        with pytest.raises(KeyError):
            parse_summary({"id": 1})


class TestParseDetail:
    def test_calories_and_gear_object(self):
        d = parse_detail({
            "id": 99,
            "calories": 812.4,
            "gear": {"id": "g9", "name": "Pegasus 40"},
            "splits_metric": [{"split": 1, "distance": 1000.0}],
            "suffer_score": 60,
        })
        assert d.activity_id == "99"
        assert d.calories == 812
        assert (d.gear_id, d.gear_name) == ("g9", "Pegasus 40")
        assert d.splits_metric == [{"split": 1, "distance": 1000.0}]
        assert d.suffer_score == pytest.approx(60.0)

    def test_empty_detail(self):
        d = parse_detail({"id": 5})
        assert d.calories == 0
        assert d.splits_metric == []
        assert d.gear_id is None
        assert d.gear_name is None


class TestParseRateLimit:
    def test_standard_headers(self):
        rl = parse_rate_limit({"X-RateLimit-Usage": "31,482", "X-RateLimit-Limit": "100,1000"})
        assert rl == RateLimitUsage(short_usage=31, daily_usage=482, short_limit=100, daily_limit=1000)
        assert rl.short_remaining == 69
        assert rl.daily_remaining == 518

    def test_read_headers_preferred(self):
        rl = parse_rate_limit({
            "X-RateLimit-Usage": "31,482",
            "X-RateLimit-Limit": "200,2000",
            "X-ReadRateLimit-Usage": "20,300",
            "X-ReadRateLimit-Limit": "100,1000",
        })
        assert (rl.short_usage, rl.short_limit) == (20, 100)

    def test_absent_headers(self):
        assert parse_rate_limit({}) is None

    def test_malformed_headers(self):
        assert parse_rate_limit({"X-RateLimit-Usage": "lots", "X-RateLimit-Limit": "100,1000"}) is None

    def test_near_exhaustion(self):
        assert RateLimitUsage(97, 10, 100, 1000).near_exhaustion(5) is True
        assert RateLimitUsage(10, 998, 100, 1000).near_exhaustion(5) is True
        assert RateLimitUsage(95, 995, 100, 1000).near_exhaustion(5) is False
