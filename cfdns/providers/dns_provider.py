"""
cfdns/providers/dns_provider.py

Responsibility: Defines the DNSProvider Protocol and the DnsRecord value object.
Does NOT: make HTTP calls, touch the zone cache, or decide what to update.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Record types whose content is an IP address, keyed by address version
IP_RECORD_TYPES = {4: "A", 6: "AAAA"}


# ---------------------------------------------------------------------------
# Value object: stable shape returned by all DNSProvider implementations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DnsRecord:
    """
    Represents a single DNS record as returned by a DNSProvider.

    The core only ever reads these; the provider owns them.
    """

    # Provider-assigned unique identifier for the record
    id: str

    # Fully-qualified DNS name, e.g. "home.example.com"
    name: str

    # Record type as reported by the provider, e.g. "A", "AAAA", "CNAME"
    type: str

    # Raw content string as stored by the provider
    content: str

    # TTL in seconds; 1 means "automatic" on Cloudflare
    ttl: int = 1

    # Whether the record is proxied through the provider's CDN
    proxied: bool = False

    @property
    def ip(self) -> IpAddress | None:
        """
        Returns the typed address for A/AAAA records, or None for any other
        record type (or for content the provider stored unparsed).
        """
        if self.type not in IP_RECORD_TYPES.values():
            return None
        try:
            return ipaddress.ip_address(self.content)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Abstract interface: all DNS providers must implement this contract
# ---------------------------------------------------------------------------


@runtime_checkable
class DNSProvider(Protocol):
    """
    Abstract protocol for the four provider operations reconciliation needs.

    The reconciler depends on this abstraction, never on a concrete client.
    Every method raises a DnsProviderError subclass on failure:
    ProviderNotFoundError, ProviderPermissionError, ProviderStatusError or
    ProviderTransportError.
    """

    async def find_zone_id(self, zone_name: str) -> str:
        """
        Returns the provider id of the zone with the given name.

        Raises:
            ProviderNotFoundError: If no zone with that name is visible.
        """
        ...

    async def list_records(self, zone_id: str, record_name: str) -> list[DnsRecord]:
        """Returns every record named ``record_name`` in the zone, of any type."""
        ...

    async def create_record(self, zone_id: str, record_name: str, ip: IpAddress) -> DnsRecord:
        """Creates an A or AAAA record (chosen from the address family)."""
        ...

    async def update_record(self, zone_id: str, record: DnsRecord, new_ip: IpAddress) -> DnsRecord:
        """Points an existing A or AAAA record at ``new_ip``."""
        ...
