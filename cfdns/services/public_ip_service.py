"""
cfdns/services/public_ip_service.py

Responsibility: Finds the internet-visible address of a local interface
address by asking Cloudflare's trace endpoint from that address, and
memoizes the answer once per (interface, family) for the run.
Does NOT: pick local addresses, or touch DNS records.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections.abc import Callable
from importlib.metadata import PackageNotFoundError, version

import httpx

from cfdns.exceptions import (
    LookupClientSetupError,
    LookupConnectionError,
    LookupTimeoutError,
    MalformedTraceError,
    PublicIpLookupError,
    WrongAddressFamilyError,
)
from cfdns.providers.dns_provider import IpAddress

logger = logging.getLogger(__name__)

# NOTE: the trace endpoint answers with "key=value" lines, one of them "ip=<caller address>".
TRACE_URL = "https://cloudflare.com/cdn-cgi/trace"
LOOKUP_TIMEOUT_SECONDS = 5.0

try:
    _VERSION = version("cfdns")
except PackageNotFoundError:
    _VERSION = "0.0.0"
USER_AGENT = f"cfdns/{_VERSION}"

_FAMILY_NAMES = {4: "IPv4", 6: "IPv6"}

ClientFactory = Callable[[IpAddress], httpx.AsyncClient]


def make_bound_client(local_ip: IpAddress) -> httpx.AsyncClient:
    """
    Builds an HTTP client whose connections originate from ``local_ip``.

    Proxies from the environment are ignored so the probe really leaves
    through the interface that owns the address.
    """
    transport = httpx.AsyncHTTPTransport(local_address=str(local_ip))
    return httpx.AsyncClient(
        transport=transport,
        timeout=LOOKUP_TIMEOUT_SECONDS,
        trust_env=False,
        headers={"User-Agent": USER_AGENT},
    )


def extract_ip_from_trace(text: str) -> IpAddress:
    """
    Returns the address from the first ``ip=`` line of a trace body.

    Raises:
        MalformedTraceError: If there is no such line or its value is not an IP.
    """
    line = next((l for l in text.splitlines() if l.startswith("ip=")), None)
    if line is None:
        raise MalformedTraceError("the body returned from the ip lookup service did not include an IP")
    try:
        return ipaddress.ip_address(line[3:].strip())
    except ValueError as exc:
        raise MalformedTraceError("could not parse the IP address from the server response") from exc


class PublicIpService:
    """
    Resolves public addresses for NAT'd interfaces.

    Each (interface, family) pair gets one shared lookup task. The first
    caller starts it; everyone else awaits the same task, so there is one
    probe and one committed value per pair. A failed task is dropped, so the
    next caller after the failure tries again.

    Collaborators:
        - ClientFactory: builds the address-bound httpx.AsyncClient per probe
    """

    def __init__(self, client_factory: ClientFactory = make_bound_client) -> None:
        """
        Args:
            client_factory: Returns a fresh client bound to a local address.
                            Override in tests or to change timeouts.
        """
        self._client_factory = client_factory
        self._cells: dict[tuple[str, int], asyncio.Task[IpAddress]] = {}

    async def resolve_for(self, interface: str, local_ip: IpAddress | None) -> IpAddress | None:
        """
        Returns the memoized public address for an interface's local address.

        Args:
            interface: Interface name, part of the memo key.
            local_ip: The interface's best address for the family, or None.

        Returns:
            The public address, or None when the interface has no local
            address for this family (no probe is made).

        Raises:
            PublicIpLookupError: If the probe failed.
        """
        if local_ip is None:
            return None

        key = (interface, local_ip.version)
        task = self._cells.get(key)
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            task = asyncio.ensure_future(self._resolve_and_log(interface, local_ip))
            self._cells[key] = task
        return await task

    async def lookup(self, local_ip: IpAddress) -> IpAddress:
        """
        Probes the trace endpoint from ``local_ip`` and returns the address it saw.

        Not memoized; use resolve_for() from reconciliation code.

        Args:
            local_ip: The local address the request must originate from.

        Returns:
            The public address, always of the same family as ``local_ip``.

        Raises:
            LookupClientSetupError: If the bound client cannot be created.
            LookupConnectionError: If the endpoint cannot be reached.
            LookupTimeoutError: If the probe exceeds the timeout.
            MalformedTraceError: If the body has no parsable ``ip=`` line.
            WrongAddressFamilyError: If the endpoint saw the other family.
            PublicIpLookupError: For any other HTTP failure.
        """
        try:
            client = self._client_factory(local_ip)
        except (ValueError, TypeError, OSError) as exc:
            raise LookupClientSetupError(
                f"failed to initialize web lookup client for {local_ip}: {exc}"
            ) from exc

        async with client:
            try:
                # The client timeout bounds each phase; wait_for bounds the whole request
                response = await asyncio.wait_for(client.get(TRACE_URL), LOOKUP_TIMEOUT_SECONDS)
                response.raise_for_status()
            except asyncio.TimeoutError as exc:
                raise LookupTimeoutError(
                    f"request to IP lookup service from {local_ip} timed out"
                ) from exc
            except httpx.ConnectError as exc:
                raise LookupConnectionError(
                    f"could not connect to web lookup service from {local_ip}: {exc}"
                ) from exc
            except httpx.TimeoutException as exc:
                raise LookupTimeoutError(
                    f"request to IP lookup service from {local_ip} timed out"
                ) from exc
            except httpx.HTTPStatusError as exc:
                raise PublicIpLookupError(
                    f"IP lookup service returned status {exc.response.status_code}."
                ) from exc
            except httpx.HTTPError as exc:
                raise PublicIpLookupError(f"failed to get IP from web lookup: {exc}") from exc

        public_ip = extract_ip_from_trace(response.text)
        if public_ip.version != local_ip.version:
            raise WrongAddressFamilyError(
                expected=_FAMILY_NAMES[local_ip.version],
                got=_FAMILY_NAMES[public_ip.version],
            )
        return public_ip

    async def _resolve_and_log(self, interface: str, local_ip: IpAddress) -> IpAddress:
        public_ip = await self.lookup(local_ip)
        logger.debug(
            "Resolved public %s for %s using web lookup: %s",
            _FAMILY_NAMES[local_ip.version],
            interface,
            public_ip,
        )
        return public_ip
