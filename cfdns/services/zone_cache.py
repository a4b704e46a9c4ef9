"""
cfdns/services/zone_cache.py

Responsibility: Memoizes zone name -> provider zone id for the whole run,
shared by every concurrent record task, and flushes the map at run end.
Does NOT: expire entries, or talk to the provider other than through
DNSProvider.find_zone_id.
"""

from __future__ import annotations

import logging

import aiorwlock

from cfdns.exceptions import (
    ProviderNotFoundError,
    ProviderPermissionError,
    ProviderStatusError,
    ZoneAccessDeniedError,
    ZoneApiError,
    ZoneNotFoundError,
)
from cfdns.providers.dns_provider import DNSProvider
from cfdns.repositories.zone_cache_repository import ZoneCacheRepository

logger = logging.getLogger(__name__)


class ZoneCache:
    """
    Reader/writer-locked zone id memo.

    Hits are served under the shared reader lock. A miss releases the lock,
    asks the provider, then inserts under the exclusive writer lock. Two
    concurrent misses for the same zone may both query the provider; the
    id they write is the same, so the second insert is harmless.

    Entries never expire. A zone that is deleted and recreated upstream
    keeps its stale id until the cache file is cleared.

    Collaborators:
        - DNSProvider: answers cache misses
        - ZoneCacheRepository: loads the map at start, saves it at the end
    """

    def __init__(
        self,
        provider: DNSProvider,
        zones: dict[str, str] | None = None,
        repository: ZoneCacheRepository | None = None,
    ) -> None:
        """
        Args:
            provider: Used to look up zones missing from the cache.
            zones: Initial map, typically from ZoneCacheRepository.load().
            repository: Where save() writes the map; None disables saving.
        """
        self._provider = provider
        self._zones = dict(zones or {})
        self._repository = repository
        self._lock = aiorwlock.RWLock()

    @classmethod
    def load(cls, provider: DNSProvider, repository: ZoneCacheRepository) -> ZoneCache:
        """Builds a cache pre-filled from the repository's file."""
        return cls(provider, repository.load(), repository)

    async def resolve(self, zone_name: str) -> str:
        """
        Returns the provider id of a zone, querying the provider on a miss.

        Args:
            zone_name: The zone's root domain, e.g. "example.com".

        Returns:
            The zone id.

        Raises:
            ZoneNotFoundError: If the provider knows no such zone.
            ZoneAccessDeniedError: If the token may not read the zone.
            ZoneApiError: For any other API status failure.
            ProviderTransportError: If the provider could not be reached.
        """
        async with self._lock.reader_lock:
            zone_id = self._zones.get(zone_name)
        if zone_id is not None:
            logger.debug("Zone cache hit: %s -> %s", zone_name, zone_id)
            return zone_id

        logger.debug("Zone %s not in cache, querying.", zone_name)
        zone_id = await self._fetch(zone_name)

        async with self._lock.writer_lock:
            self._zones[zone_name] = zone_id
        return zone_id

    async def snapshot(self) -> dict[str, str]:
        """Returns a copy of the current map."""
        async with self._lock.reader_lock:
            return dict(self._zones)

    async def save(self) -> None:
        """
        Writes the whole map, including entries added this run, to disk.

        Raises:
            OSError: If the file cannot be written.
        """
        if self._repository is None:
            return
        async with self._lock.writer_lock:
            self._repository.save(self._zones)
        logger.info("Zone cache saved to %s.", self._repository.path)

    async def _fetch(self, zone_name: str) -> str:
        try:
            return await self._provider.find_zone_id(zone_name)
        except ProviderNotFoundError as exc:
            raise ZoneNotFoundError(zone_name) from exc
        except ProviderPermissionError as exc:
            raise ZoneAccessDeniedError(zone_name) from exc
        except ProviderStatusError as exc:
            raise ZoneApiError(zone_name, exc.status_code) from exc
