from __future__ import annotations

import pytest

from fpl_fixtures import FakeFPLClient
from fpl_sync.collector.api_client import UpstreamParseError
from fpl_sync.collector.period import current_period, find_current_period


def test_find_current_period_picks_flagged_event():
    events = [{"id": 10, "is_current": False}, {"id": 11, "is_current": True}]
    assert find_current_period(events) == 11


def test_find_current_period_none_when_nothing_flagged():
    assert find_current_period([{"id": 1, "is_current": False}]) is None
    assert find_current_period([]) is None
    assert find_current_period(None) is None


@pytest.mark.asyncio
async def test_current_period_from_bootstrap():
    client = FakeFPLClient({"/bootstrap-static/": {"events": [{"id": 10, "is_current": False}, {"id": 11, "is_current": True}]}})
    assert await current_period(client, fallback=3) == 11


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"events": []},
        {"events": [{"id": 10, "is_current": False}]},
        {},
        ["not", "a", "dict"],
        None,
    ],
)
async def test_current_period_falls_back_on_unusable_metadata(payload):
    client = FakeFPLClient({"/bootstrap-static/": payload})
    assert await current_period(client, fallback=11) == 11


@pytest.mark.asyncio
async def test_current_period_falls_back_on_fetch_failure():
    client = FakeFPLClient({})  # 404
    assert await current_period(client, fallback=11) == 11

    client = FakeFPLClient({"/bootstrap-static/": UpstreamParseError("/bootstrap-static/")})
    assert await current_period(client, fallback=7) == 7
