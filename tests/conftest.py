"""Shared test fixtures."""
from datetime import datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from stridesync.models.activity import ActivityRecord  # noqa: F401
from stridesync.models.sync import EnrichmentUsage, SyncLog  # noqa: F401
from stridesync.config import Settings
from stridesync.strava.client import ActivityPage, DetailResponse
from stridesync.strava.payloads import ProviderDetail, RateLimitUsage, parse_summary
from stridesync.sync.store import ActivityStore


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="store")
def store_fixture(engine) -> ActivityStore:
    return ActivityStore(engine)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    """Settings with no inter-call delay so enrichment loops run instantly."""
    return Settings(
        _env_file=None,
        max_enrichment_calls=15,
        daily_enrichment_limit=90,
        detail_call_delay_seconds=0,
        rate_limit_min_remaining=5,
        refresh_timeout_seconds=5,
    )


@pytest.fixture(name="make_raw_activity")
def make_raw_activity_fixture():
    """Factory for Strava list-endpoint activity dicts, days_ago relative to now."""

    def _make(activity_id, days_ago=1, activity_type="Run", distance_m=10000.0, moving_time=3000, **extra):
        start = datetime.utcnow().replace(microsecond=0) - timedelta(days=days_ago)
        raw = {
            "id": activity_id,
            "name": f"{activity_type} {activity_id}",
            "type": activity_type,
            "sport_type": activity_type,
            "start_date": _iso(start),
            "start_date_local": _iso(start),
            "distance": distance_m,
            "moving_time": moving_time,
            "elapsed_time": moving_time + 60,
            "total_elevation_gain": 42.0,
            "average_speed": distance_m / moving_time if moving_time else 0.0,
            "max_speed": 4.8,
            "has_heartrate": False,
        }
        raw.update(extra)
        return raw

    return _make


@pytest.fixture(name="make_client")
def make_client_fixture():
    """
    Factory for an AsyncMock Strava client.

    Args (of the returned factory):
        raw_activities: list-endpoint dicts returned by list_activities().
        details: {activity_id: calories | ProviderDetail | Exception}.
        list_rate_limit / detail_rate_limit: RateLimitUsage attached to responses.
    """

    def _make(raw_activities=(), details=None, list_rate_limit=None, detail_rate_limit=None):
        details = details or {}
        client = AsyncMock()
        client.list_activities = AsyncMock(
            return_value=ActivityPage(
                activities=[parse_summary(r) for r in raw_activities],
                rate_limit=list_rate_limit,
            )
        )

        async def _detail(credential, activity_id):
            value = details.get(activity_id, 0)
            if isinstance(value, Exception):
                raise value
            if not isinstance(value, ProviderDetail):
                value = ProviderDetail(activity_id=activity_id, calories=value)
            return DetailResponse(detail=value, rate_limit=detail_rate_limit)

        client.get_activity_detail = AsyncMock(side_effect=_detail)
        return client

    return _make


@pytest.fixture(name="auth")
def auth_fixture():
    auth = AsyncMock()
    auth.get_access_token = AsyncMock(return_value="test-token")
    return auth


@pytest.fixture(name="roomy_rate_limit")
def roomy_rate_limit_fixture() -> RateLimitUsage:
    return RateLimitUsage(short_usage=10, daily_usage=100, short_limit=100, daily_limit=1000)


@pytest.fixture(name="sync_service")
def sync_service_fixture(store, auth, settings, make_client):
    """Service over the in-memory store; tests swap .client as needed."""
    from stridesync.sync.service import ActivitySyncService

    return ActivitySyncService(client=make_client(), auth=auth, store=store, settings=settings)


@pytest.fixture(name="client")
def client_fixture(store, sync_service):
    """TestClient with store and service dependencies pointed at in-memory SQLite."""
    from fastapi.testclient import TestClient

    from stridesync.api.dependencies import get_store, get_sync_service
    from stridesync.api.main import create_app

    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    with TestClient(app) as c:
        yield c
