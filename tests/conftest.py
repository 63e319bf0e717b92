from __future__ import annotations

from typing import Any

import pytest

from fpl_fixtures import FakeStore, classic_path, manager, standings_page
from fpl_sync.utils.config import ScheduleConfig, Settings, TrackedLeague, UpstreamConfig


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_url="postgresql://fpl@localhost:5432/fpl",
        store_key="secret-key",
        trigger_secret="cron-secret",
        leagues=(
            TrackedLeague(label="classic", league_id=100),
            TrackedLeague(label="lms", league_id=200),
            TrackedLeague(label="h2h", league_id=300),
        ),
        upstream=UpstreamConfig(invocation_deadline_seconds=5.0, fallback_period=11),
        schedule=ScheduleConfig(enabled=True, cron="*/30 * * * *"),
    )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def league_routes() -> dict[str, Any]:
    """GW 11 current; classic has managers 1 and 2, lms has 2 and 3, h2h is empty."""
    return {
        "/bootstrap-static/": {"events": [{"id": 10, "is_current": False}, {"id": 11, "is_current": True}]},
        classic_path(100, 1): standings_page([manager(1, 1, 50, 5), manager(2, 2, 40, 7)], league_name="Classic"),
        classic_path(200, 1): standings_page([manager(2, 1, 40), manager(3, 2, 10)]),
        classic_path(300, 1): standings_page([]),
    }
