"""
cfdns/exceptions.py

Responsibility: Defines all custom exception classes used across the application.
Does NOT: contain business logic, logging, or HTTP handling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cfdns.services.outcome_reporter import RecordReport


class CfdnsError(Exception):
    """Base class for every error raised by cfdns itself."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigLoadError(CfdnsError):
    """
    Raised when the configuration file is missing, unreadable, or does not
    have the expected shape.
    """


# ---------------------------------------------------------------------------
# Local network state
# ---------------------------------------------------------------------------


class InterfaceNotFoundError(CfdnsError):
    """
    Raised by an AddressSource when the named interface does not exist.

    An interface that exists but has no usable addresses is NOT an error;
    it simply yields no address for that family.
    """

    def __init__(self, interface: str) -> None:
        super().__init__(f"interface `{interface}` not found")
        self.interface = interface


class AddressSourceError(CfdnsError):
    """Raised when interface addresses cannot be enumerated (e.g. netlink failure)."""


# ---------------------------------------------------------------------------
# DNS provider
# ---------------------------------------------------------------------------


class DnsProviderError(CfdnsError):
    """
    Raised by any DNSProvider implementation when a DNS API call fails.

    Subclasses tell the caller which kind of failure occurred so zone lookups
    can be translated into the zone error family.
    """


class ProviderNotFoundError(DnsProviderError):
    """The provider answered 404 for the requested resource."""


class ProviderPermissionError(DnsProviderError):
    """The provider rejected the API token (401/403)."""


class ProviderStatusError(DnsProviderError):
    """
    The provider answered with any other non-success status, or with a
    success status but ``success: false`` in the body.
    """

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class ProviderTransportError(DnsProviderError):
    """The provider could not be reached (DNS, TCP, TLS, or timeout failure)."""


# ---------------------------------------------------------------------------
# Zone resolution
# ---------------------------------------------------------------------------


class ZoneError(CfdnsError):
    """Base class for zone name -> zone id resolution failures."""

    def __init__(self, message: str, zone: str) -> None:
        super().__init__(message)
        self.zone = zone


class ZoneNotFoundError(ZoneError):
    def __init__(self, zone: str) -> None:
        super().__init__(f"zone `{zone}` was not found", zone)


class ZoneAccessDeniedError(ZoneError):
    def __init__(self, zone: str) -> None:
        super().__init__(f"permission denied while accessing zone `{zone}`", zone)


class ZoneApiError(ZoneError):
    def __init__(self, zone: str, status_code: int) -> None:
        super().__init__(
            f"Cloudflare API request failed for zone `{zone}` with status code `{status_code}`",
            zone,
        )
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Record reconciliation
# ---------------------------------------------------------------------------


class NotAnIpRecordError(CfdnsError):
    """
    Raised when the name to be reconciled is occupied by a record that is
    not an A/AAAA record (typically a manually managed CNAME).
    """

    def __init__(self, domain: str, record_type: str) -> None:
        super().__init__(
            f"`{domain}` already has a {record_type} record; refusing to manage it as an IP record"
        )
        self.domain = domain
        self.record_type = record_type


class BatchFailedError(CfdnsError):
    """
    Raised at the end of a run when at least one record or interface failed.

    Raised only after every in-flight record finished and the zone cache
    was saved.
    """

    def __init__(
        self,
        failed_records: list[RecordReport],
        interface_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.failed_records = failed_records
        self.interface_errors = interface_errors or {}
        parts = []
        if failed_records:
            parts.append(f"{len(failed_records)} record(s) failed")
        if self.interface_errors:
            parts.append(f"{len(self.interface_errors)} interface(s) failed")
        super().__init__(", ".join(parts) or "run failed")


# ---------------------------------------------------------------------------
# Public IP lookup
# ---------------------------------------------------------------------------


class PublicIpLookupError(CfdnsError):
    """
    Raised by PublicIpService when the public IP address cannot be determined.

    This may occur due to network connectivity issues on the interface or an
    unexpected response from the trace endpoint.
    """


class LookupClientSetupError(PublicIpLookupError):
    """The HTTP client bound to the local address could not be created."""


class LookupConnectionError(PublicIpLookupError):
    """The trace endpoint could not be reached from the local address."""


class LookupTimeoutError(PublicIpLookupError):
    """The trace request did not complete within the lookup timeout."""


class MalformedTraceError(PublicIpLookupError):
    """The trace body had no parsable ``ip=`` line."""


class WrongAddressFamilyError(PublicIpLookupError):
    """The trace endpoint returned an address of the other family."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"expected lookup to return an {expected} address but got {got}")
        self.expected = expected
        self.got = got
