"""
tests/unit/test_zone_cache.py

Unit tests for cfdns/services/zone_cache.py.
The DNSProvider is an AsyncMock; no HTTP calls are made.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from cfdns.exceptions import (
    ProviderNotFoundError,
    ProviderPermissionError,
    ProviderStatusError,
    ProviderTransportError,
    ZoneAccessDeniedError,
    ZoneApiError,
    ZoneNotFoundError,
)
from cfdns.repositories.zone_cache_repository import ZoneCacheRepository
from cfdns.services.zone_cache import ZoneCache


@pytest.fixture()
def provider():
    mock = AsyncMock()
    mock.find_zone_id.return_value = "zone-abc"
    return mock


@pytest.mark.asyncio
async def test_miss_then_hit_queries_provider_once(provider):
    cache = ZoneCache(provider)

    assert await cache.resolve("example.com") == "zone-abc"
    assert await cache.resolve("example.com") == "zone-abc"

    provider.find_zone_id.assert_awaited_once_with("example.com")


@pytest.mark.asyncio
async def test_preloaded_entries_skip_the_provider(provider):
    cache = ZoneCache(provider, {"example.com": "cached-id"})

    assert await cache.resolve("example.com") == "cached-id"
    provider.find_zone_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_resolves_agree(provider):
    cache = ZoneCache(provider)

    results = await asyncio.gather(*(cache.resolve("example.com") for _ in range(10)))

    assert set(results) == {"zone-abc"}
    assert await cache.snapshot() == {"example.com": "zone-abc"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider_error, zone_error",
    [
        (ProviderNotFoundError("missing"), ZoneNotFoundError),
        (ProviderPermissionError("denied"), ZoneAccessDeniedError),
        (ProviderStatusError("boom", 500), ZoneApiError),
    ],
)
async def test_provider_errors_become_zone_errors(provider, provider_error, zone_error):
    provider.find_zone_id.side_effect = provider_error
    cache = ZoneCache(provider)

    with pytest.raises(zone_error) as info:
        await cache.resolve("example.com")

    assert info.value.zone == "example.com"
    assert await cache.snapshot() == {}


@pytest.mark.asyncio
async def test_api_error_carries_status(provider):
    provider.find_zone_id.side_effect = ProviderStatusError("slow down", 429)

    with pytest.raises(ZoneApiError) as info:
        await ZoneCache(provider).resolve("example.com")

    assert info.value.status_code == 429


@pytest.mark.asyncio
async def test_transport_errors_propagate_unchanged(provider):
    provider.find_zone_id.side_effect = ProviderTransportError("offline")

    with pytest.raises(ProviderTransportError):
        await ZoneCache(provider).resolve("example.com")


@pytest.mark.asyncio
async def test_save_writes_new_entries(provider, tmp_path):
    repo = ZoneCacheRepository(tmp_path / "zones.json")
    repo.save({"old.com": "old-id"})

    cache = ZoneCache.load(provider, repo)
    await cache.resolve("example.com")
    await cache.save()

    assert json.loads((tmp_path / "zones.json").read_text()) == {
        "example.com": "zone-abc",
        "old.com": "old-id",
    }


@pytest.mark.asyncio
async def test_save_without_repository_is_a_noop(provider):
    cache = ZoneCache(provider)
    await cache.resolve("example.com")
    await cache.save()
