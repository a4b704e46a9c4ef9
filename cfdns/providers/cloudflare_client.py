"""
cfdns/providers/cloudflare_client.py

Responsibility: Implements the DNSProvider protocol using the Cloudflare REST API.
All Cloudflare HTTP calls are concentrated here; no other file may call the
Cloudflare API directly.
Does NOT: read configuration, cache zone ids, or decide what to update.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cfdns.exceptions import (
    ProviderNotFoundError,
    ProviderPermissionError,
    ProviderStatusError,
    ProviderTransportError,
)
from cfdns.providers.dns_provider import IP_RECORD_TYPES, DnsRecord, IpAddress

logger = logging.getLogger(__name__)

CLOUDFLARE_BASE = "https://api.cloudflare.com/client/v4"


class CloudflareClient:
    """
    Implements DNSProvider for the Cloudflare DNS REST API (v4).

    All outbound Cloudflare requests go through the injected httpx.AsyncClient,
    making this class fully testable without real network calls (use respx.mock).

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
        - DNSProvider: this class satisfies the protocol contract
    """

    def __init__(self, http_client: httpx.AsyncClient, api_token: str) -> None:
        """
        Initialises the client with an HTTP client and a Cloudflare API token.

        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: A Cloudflare API token with Zone:Read and DNS:Edit permissions.
        """
        self._client = http_client
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def find_zone_id(self, zone_name: str) -> str:
        """
        Looks up the Cloudflare zone id for a zone name.

        Args:
            zone_name: The zone's root domain, e.g. "example.com".

        Returns:
            The zone id of the first zone Cloudflare returns for that name.

        Raises:
            ProviderNotFoundError: If the token can see no zone with that name.
            DnsProviderError: For any other API failure.
        """
        url = f"{CLOUDFLARE_BASE}/zones"
        params = {"name": zone_name}

        logger.debug("GET %s params=%s", url, params)
        data = await self._request("GET", url, params=params)

        result = data.get("result") or []
        if not result:
            raise ProviderNotFoundError(f"No zone named {zone_name} is visible to this token.")
        return result[0]["id"]

    async def list_records(self, zone_id: str, record_name: str) -> list[DnsRecord]:
        """
        Returns every DNS record with the given name in a zone.

        A and AAAA records come back in one request; any other type found at
        the same name (e.g. a CNAME) is returned as well so the caller can
        detect the conflict.

        Args:
            zone_id: The Cloudflare zone ID.
            record_name: The fully-qualified DNS name to look up.

        Returns:
            A list of DnsRecord instances, possibly empty.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        url = f"{CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"
        params = {"name": record_name}

        logger.debug("GET %s params=%s", url, params)
        data = await self._request("GET", url, params=params)

        return [self._parse_record(r) for r in data.get("result") or []]

    async def create_record(self, zone_id: str, record_name: str, ip: IpAddress) -> DnsRecord:
        """
        Creates a new A or AAAA record in the given Cloudflare zone.

        Args:
            zone_id: The Cloudflare zone ID.
            record_name: The fully-qualified DNS name for the new record.
            ip: The address; its version selects the record type.

        Returns:
            The newly created DnsRecord.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        url = f"{CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"
        payload: dict[str, Any] = {
            "type": IP_RECORD_TYPES[ip.version],
            "name": record_name,
            "content": str(ip),
            "ttl": 1,      # 1 = automatic TTL on Cloudflare
            "proxied": False,
        }

        logger.debug("POST %s payload=%s", url, payload)
        data = await self._request("POST", url, json=payload)

        return self._parse_record(data["result"])

    async def update_record(self, zone_id: str, record: DnsRecord, new_ip: IpAddress) -> DnsRecord:
        """
        Updates an existing A or AAAA record with a new IP address.

        TTL and proxy status of the existing record are preserved.

        Args:
            zone_id: The Cloudflare zone ID.
            record: The existing DnsRecord to update.
            new_ip: The new address to write.

        Returns:
            The updated DnsRecord.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        url = f"{CLOUDFLARE_BASE}/zones/{zone_id}/dns_records/{record.id}"
        payload: dict[str, Any] = {
            "type": IP_RECORD_TYPES[new_ip.version],
            "name": record.name,
            "content": str(new_ip),
            "ttl": record.ttl,
            "proxied": record.proxied,
        }

        logger.debug("PUT %s payload=%s", url, payload)
        data = await self._request("PUT", url, json=payload)

        return self._parse_record(data["result"])

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends an authenticated HTTP request to the Cloudflare API.

        Args:
            method: HTTP verb ("GET", "PUT", "POST").
            url: Full URL of the Cloudflare API endpoint.
            params: Optional query-string parameters.
            json: Optional JSON request body.

        Returns:
            The parsed JSON response body as a dict.

        Raises:
            ProviderNotFoundError: On HTTP 404.
            ProviderPermissionError: On HTTP 401 or 403.
            ProviderStatusError: On any other error status, or when the API
                                 returns success=false in the response body.
            ProviderTransportError: If the request never got a response.
        """
        try:
            response = await self._client.request(
                method, url, headers=self._headers, params=params, json=json
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = (
                f"Cloudflare API error {status} for {method} {url}: {exc.response.text}"
            )
            if status == 404:
                raise ProviderNotFoundError(message) from exc
            if status in (401, 403):
                raise ProviderPermissionError(message) from exc
            raise ProviderStatusError(message, status) from exc
        except httpx.RequestError as exc:
            raise ProviderTransportError(
                f"Network error calling Cloudflare API ({method} {url}): {exc}"
            ) from exc

        try:
            body: dict[str, Any] = response.json()
        except ValueError as exc:
            raise ProviderStatusError(
                f"Cloudflare API returned a non-JSON body for {method} {url}.",
                response.status_code,
            ) from exc

        # NOTE: Cloudflare wraps all responses in {"success": bool, "result": ...}
        if not body.get("success", False):
            errors = body.get("errors", [])
            raise ProviderStatusError(
                f"Cloudflare API returned success=false for {method} {url}. "
                f"Errors: {errors}",
                response.status_code,
            )

        return body

    @staticmethod
    def _parse_record(raw: dict[str, Any]) -> DnsRecord:
        """
        Converts a raw Cloudflare API record dict into a typed DnsRecord.

        Args:
            raw: A single record object from the Cloudflare API response.

        Returns:
            A DnsRecord populated from the raw dict.
        """
        return DnsRecord(
            id=raw["id"],
            name=raw["name"],
            type=raw.get("type", "A"),
            content=raw.get("content", ""),
            ttl=raw.get("ttl", 1),
            proxied=raw.get("proxied", False),
        )
