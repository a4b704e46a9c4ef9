"""
tests/unit/test_public_ip_service.py

Unit tests for cfdns/services/public_ip_service.py.
The trace endpoint is intercepted by respx; no real network traffic.
"""

from __future__ import annotations

import asyncio
import ipaddress

import httpx
import pytest

import cfdns.services.public_ip_service as public_ip_service
from cfdns.exceptions import (
    LookupClientSetupError,
    LookupConnectionError,
    LookupTimeoutError,
    MalformedTraceError,
    PublicIpLookupError,
    WrongAddressFamilyError,
)
from cfdns.services.public_ip_service import (
    LOOKUP_TIMEOUT_SECONDS,
    TRACE_URL,
    USER_AGENT,
    PublicIpService,
    extract_ip_from_trace,
    make_bound_client,
)

_LOCAL_V4 = ipaddress.ip_address("192.168.1.10")
_LOCAL_V6 = ipaddress.ip_address("2001:db8::10")


def _trace(ip: str) -> str:
    return f"fl=123\nh=cloudflare.com\nip={ip}\nts=1700000000.0\nvisit_scheme=https\n"


def _plain_client(local_ip):
    return httpx.AsyncClient()


@pytest.fixture()
def service():
    return PublicIpService(client_factory=_plain_client)


# ---------------------------------------------------------------------------
# extract_ip_from_trace / make_bound_client
# ---------------------------------------------------------------------------


def test_extract_ip_from_trace():
    assert extract_ip_from_trace(_trace("203.0.113.7")) == ipaddress.ip_address("203.0.113.7")


@pytest.mark.parametrize("body", ["fl=1\nh=x\n", "ip=not-an-ip\n", ""])
def test_extract_ip_from_malformed_trace(body):
    with pytest.raises(MalformedTraceError):
        extract_ip_from_trace(body)


@pytest.mark.asyncio
async def test_bound_client_ignores_proxies_and_sets_timeout():
    client = make_bound_client(_LOCAL_V4)
    try:
        assert client.trust_env is False
        assert client.timeout.connect == LOOKUP_TIMEOUT_SECONDS
        assert client.headers["User-Agent"] == USER_AGENT
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lookup_returns_public_ip(mock_http, service):
    mock_http.get(TRACE_URL).mock(return_value=httpx.Response(200, text=_trace("203.0.113.7")))

    assert await service.lookup(_LOCAL_V4) == ipaddress.ip_address("203.0.113.7")


@pytest.mark.asyncio
async def test_lookup_wrong_family(mock_http, service):
    mock_http.get(TRACE_URL).mock(return_value=httpx.Response(200, text=_trace("203.0.113.7")))

    with pytest.raises(WrongAddressFamilyError) as info:
        await service.lookup(_LOCAL_V6)

    assert info.value.expected == "IPv6"
    assert info.value.got == "IPv4"


@pytest.mark.asyncio
async def test_lookup_malformed_body(mock_http, service):
    mock_http.get(TRACE_URL).mock(return_value=httpx.Response(200, text="hello"))

    with pytest.raises(MalformedTraceError):
        await service.lookup(_LOCAL_V4)


@pytest.mark.asyncio
async def test_lookup_connect_error(mock_http, service):
    mock_http.get(TRACE_URL).mock(side_effect=httpx.ConnectError("unreachable"))

    with pytest.raises(LookupConnectionError):
        await service.lookup(_LOCAL_V4)


@pytest.mark.asyncio
async def test_lookup_timeout(mock_http, service):
    mock_http.get(TRACE_URL).mock(side_effect=httpx.ReadTimeout("slow"))

    with pytest.raises(LookupTimeoutError):
        await service.lookup(_LOCAL_V4)


@pytest.mark.asyncio
async def test_lookup_timeout_bounds_whole_request(monkeypatch):
    """A body that trickles in chunk by chunk still hits the overall deadline."""
    monkeypatch.setattr(public_ip_service, "LOOKUP_TIMEOUT_SECONDS", 0.1)

    async def _trickle():
        for chunk in ("ip=", "203.", "0.", "113.", "7\n"):
            await asyncio.sleep(0.05)
            yield chunk.encode()

    async def _handler(request):
        return httpx.Response(200, content=_trickle())

    def _slow_client(local_ip):
        return httpx.AsyncClient(transport=httpx.MockTransport(_handler))

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(LookupTimeoutError):
        await PublicIpService(client_factory=_slow_client).lookup(_LOCAL_V4)

    assert loop.time() - started < 0.2


@pytest.mark.asyncio
async def test_lookup_bad_status(mock_http, service):
    mock_http.get(TRACE_URL).mock(return_value=httpx.Response(503))

    with pytest.raises(PublicIpLookupError, match="503"):
        await service.lookup(_LOCAL_V4)


@pytest.mark.asyncio
async def test_lookup_client_setup_failure():
    def _broken(local_ip):
        raise OSError("cannot bind")

    with pytest.raises(LookupClientSetupError):
        await PublicIpService(client_factory=_broken).lookup(_LOCAL_V4)


# ---------------------------------------------------------------------------
# resolve_for (memoized)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_resolve_for_without_local_address_makes_no_probe(mock_http, service):
    route = mock_http.get(TRACE_URL)

    assert await service.resolve_for("eth0", None) is None
    assert route.call_count == 0


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_probe(mock_http, service):
    route = mock_http.get(TRACE_URL).mock(
        return_value=httpx.Response(200, text=_trace("203.0.113.7"))
    )

    results = await asyncio.gather(*(service.resolve_for("eth0", _LOCAL_V4) for _ in range(8)))

    assert set(results) == {ipaddress.ip_address("203.0.113.7")}
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_memo_is_keyed_by_interface_and_family(mock_http, service):
    route = mock_http.get(TRACE_URL).mock(
        side_effect=[
            httpx.Response(200, text=_trace("203.0.113.7")),
            httpx.Response(200, text=_trace("198.51.100.1")),
        ]
    )

    first = await service.resolve_for("eth0", _LOCAL_V4)
    second = await service.resolve_for("eth1", _LOCAL_V4)
    again = await service.resolve_for("eth0", _LOCAL_V4)

    assert first == again == ipaddress.ip_address("203.0.113.7")
    assert second == ipaddress.ip_address("198.51.100.1")
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_failed_probe_is_retried_by_next_caller(mock_http, service):
    route = mock_http.get(TRACE_URL).mock(
        side_effect=[
            httpx.Response(500),
            httpx.Response(200, text=_trace("203.0.113.7")),
        ]
    )

    with pytest.raises(PublicIpLookupError):
        await service.resolve_for("eth0", _LOCAL_V4)

    assert await service.resolve_for("eth0", _LOCAL_V4) == ipaddress.ip_address("203.0.113.7")
    assert route.call_count == 2
