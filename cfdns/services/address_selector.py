"""
cfdns/services/address_selector.py

Responsibility: Ranks the raw addresses bound to one interface and picks the
single best IPv4 and IPv6 address.
Does NOT: enumerate interfaces, talk to the network, or know about records.
"""

from __future__ import annotations

import enum
import ipaddress
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from cfdns.providers.dns_provider import IpAddress

logger = logging.getLogger(__name__)

# Kernel address flag marking a statically configured (non-temporary) address
IFA_F_PERMANENT = 0x80

_RFC1918_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)
_UNIQUE_LOCAL_NETWORK = ipaddress.IPv6Network("fc00::/7")


class PreferenceTier(enum.IntEnum):
    """Total order over address scopes; a higher value wins."""

    INVALID = 0
    LOW = 1
    MID = 2
    HIGH = 3
    HIGHEST = 4


@dataclass(frozen=True)
class CandidateAddress:
    """An address bound to an interface together with its kernel flags."""

    ip: IpAddress
    flags: int = 0

    @property
    def permanent(self) -> bool:
        return bool(self.flags & IFA_F_PERMANENT)


@dataclass(frozen=True)
class BestAddresses:
    """The winning address per family; either may be None."""

    ipv4: ipaddress.IPv4Address | None = None
    ipv6: ipaddress.IPv6Address | None = None

    def for_version(self, version: int) -> IpAddress | None:
        return self.ipv4 if version == 4 else self.ipv6


def classify(candidate: CandidateAddress) -> PreferenceTier:
    """
    Assigns a PreferenceTier to a candidate address.

    Loopback and link-local addresses are INVALID and never selected. Among
    global IPv6 addresses, permanent ones outrank temporary privacy addresses.

    Args:
        candidate: The address and its flags.

    Returns:
        The tier of the address.
    """
    ip = candidate.ip
    if ip.is_loopback or ip.is_link_local:
        return PreferenceTier.INVALID

    if ip.version == 4:
        if any(ip in net for net in _RFC1918_NETWORKS):
            return PreferenceTier.MID
        if ip.is_global:
            return PreferenceTier.HIGH
        return PreferenceTier.LOW

    if ip in _UNIQUE_LOCAL_NETWORK:
        return PreferenceTier.MID
    if ip.is_global:
        return PreferenceTier.HIGHEST if candidate.permanent else PreferenceTier.HIGH
    return PreferenceTier.LOW


def select_best(candidates: Iterable[CandidateAddress]) -> BestAddresses:
    """
    Picks the highest-tier IPv4 and IPv6 address from an interface's candidates.

    Each family is decided independently. Ties go to the candidate seen first
    in enumeration order.

    Args:
        candidates: The interface's addresses in enumeration order.

    Returns:
        A BestAddresses with None for any family that has no usable address.
    """
    best: dict[int, tuple[PreferenceTier, IpAddress]] = {}

    for candidate in candidates:
        tier = classify(candidate)
        if tier is PreferenceTier.INVALID:
            continue
        version = candidate.ip.version
        current = best.get(version)
        # Strictly greater keeps the first-seen candidate on ties
        if current is None or tier > current[0]:
            best[version] = (tier, candidate.ip)

    ipv4 = best[4][1] if 4 in best else None
    ipv6 = best[6][1] if 6 in best else None
    return BestAddresses(ipv4=ipv4, ipv6=ipv6)
