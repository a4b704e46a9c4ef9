"""
cfdns/services/address_source.py

Responsibility: Enumerates local network interfaces and the addresses bound
to them, and resolves an interface name to its best IPv4/IPv6 addresses.
Does NOT: rank addresses itself (see address_selector), or touch DNS.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Protocol, runtime_checkable

from pyroute2 import IPRoute
from pyroute2.netlink.exceptions import NetlinkError

from cfdns.exceptions import AddressSourceError, InterfaceNotFoundError
from cfdns.services.address_selector import BestAddresses, CandidateAddress, select_best

logger = logging.getLogger(__name__)


@runtime_checkable
class AddressSource(Protocol):
    """
    Contract for anything that can report an interface's current addresses.

    Implementations must distinguish a missing interface (raise
    InterfaceNotFoundError) from an interface with no addresses (return []).
    """

    async def list_interfaces(self) -> list[str]:
        ...

    async def get_addresses(self, interface: str) -> list[CandidateAddress]:
        ...


class NetlinkAddressSource:
    """
    Reads interfaces and addresses from the Linux kernel over rtnetlink.

    pyroute2's IPRoute socket is blocking, so every query runs in a worker
    thread via asyncio.to_thread.
    """

    async def list_interfaces(self) -> list[str]:
        """
        Returns the names of all network links, in kernel index order.

        Raises:
            AddressSourceError: If netlink cannot be queried.
        """
        return await asyncio.to_thread(self._list_interfaces_sync)

    async def get_addresses(self, interface: str) -> list[CandidateAddress]:
        """
        Returns the addresses bound to an interface, in kernel order.

        Args:
            interface: The link name, e.g. "eth0".

        Returns:
            A list of CandidateAddress, empty if the link has no addresses.

        Raises:
            InterfaceNotFoundError: If no link has that name.
            AddressSourceError: If netlink cannot be queried.
        """
        return await asyncio.to_thread(self._get_addresses_sync, interface)

    # ---------------------------------------------------------------------------
    # Blocking netlink calls
    # ---------------------------------------------------------------------------

    @staticmethod
    def _list_interfaces_sync() -> list[str]:
        try:
            with IPRoute() as ipr:
                links = list(ipr.get_links())
        except (NetlinkError, OSError) as exc:
            raise AddressSourceError(f"Could not list network interfaces: {exc}") from exc

        names = []
        for link in links:
            name = link.get_attr("IFLA_IFNAME")
            if name is None:
                logger.warning("Link %s has no name attribute; skipping.", link["index"])
                continue
            names.append(name)
        return names

    @staticmethod
    def _get_addresses_sync(interface: str) -> list[CandidateAddress]:
        try:
            with IPRoute() as ipr:
                indices = list(ipr.link_lookup(ifname=interface))
                if not indices:
                    raise InterfaceNotFoundError(interface)
                messages = list(ipr.get_addr(index=indices[0]))
        except (NetlinkError, OSError) as exc:
            raise AddressSourceError(
                f"Could not read addresses of interface {interface}: {exc}"
            ) from exc

        candidates = []
        for msg in messages:
            raw = msg.get_attr("IFA_ADDRESS")
            if raw is None:
                logger.warning("Skipping address on %s: missing IP.", interface)
                continue
            # IFA_FLAGS carries the full 32-bit flag set; the header byte is the legacy fallback
            flags = msg.get_attr("IFA_FLAGS")
            if flags is None:
                flags = msg["flags"]
            try:
                ip = ipaddress.ip_address(raw)
            except ValueError:
                logger.warning("Skipping address on %s: unparsable %r.", interface, raw)
                continue
            candidates.append(CandidateAddress(ip=ip, flags=flags))
        return candidates


async def best_addresses_by_interface(source: AddressSource, interface: str) -> BestAddresses:
    """
    Resolves an interface name to its best IPv4 and IPv6 addresses.

    Args:
        source: Where to read the interface's addresses from.
        interface: The interface name.

    Returns:
        The selected addresses; a family with no usable address is None.

    Raises:
        InterfaceNotFoundError: If the interface does not exist.
    """
    candidates = await source.get_addresses(interface)
    best = select_best(candidates)
    logger.debug(
        "Best addresses selected for %s: ipv4=%s ipv6=%s", interface, best.ipv4, best.ipv6
    )
    return best
