"""
cfdns/config.py

Responsibility: Locates, reads and validates the YAML configuration file and
turns it into typed Record / InterfaceConfig / AppConfig objects.
Does NOT: write configuration, prompt the user, or contact Cloudflare.
"""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tldextract
import yaml

from cfdns.exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

APPLICATION = "cfdns"
CONFIG_FILE_NAMES = ("config.yml", "config.yaml")

DEFAULT_CONCURRENCY = 8
DEFAULT_INTERVAL_SECONDS = 300

# NOTE: suffix_list_urls=() keeps tldextract on its bundled suffix snapshot (no network fetch).
_extract = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


class RecordKind(str, enum.Enum):
    """Which address families a record manages."""

    A = "A"
    AAAA = "AAAA"
    BOTH = "BOTH"

    @property
    def versions(self) -> tuple[int, ...]:
        """IP versions this kind requires, IPv4 first."""
        return {RecordKind.A: (4,), RecordKind.AAAA: (6,), RecordKind.BOTH: (4, 6)}[self]

    @property
    def label(self) -> str:
        return {RecordKind.A: "IPv4", RecordKind.AAAA: "IPv6", RecordKind.BOTH: "IPv4+IPv6"}[self]


@dataclass(frozen=True)
class Record:
    """One FQDN managed on one interface."""

    domain: str
    zone: str
    kind: RecordKind
    web_lookup: bool = False


@dataclass(frozen=True)
class InterfaceConfig:
    """The ordered records attached to one interface."""

    name: str
    records: tuple[Record, ...] = ()


@dataclass(frozen=True)
class AppConfig:
    """The whole configuration file."""

    api_token: str
    interfaces: tuple[InterfaceConfig, ...] = ()
    concurrency: int = DEFAULT_CONCURRENCY
    interval: int = DEFAULT_INTERVAL_SECONDS
    path: Path | None = field(default=None, compare=False)

    def to_dict(self, reveal: bool = False) -> dict[str, Any]:
        """
        Returns the configuration in its file shape, for display.

        Args:
            reveal: Include the API token instead of a placeholder.
        """
        return {
            "cloudflare": {"token": self.api_token if reveal else "<hidden>"},
            "interfaces": {
                iface.name: {
                    "records": [
                        {
                            "domain": r.domain,
                            "zone": r.zone,
                            "type": r.kind.value,
                            "web_lookup": r.web_lookup,
                        }
                        for r in iface.records
                    ]
                }
                for iface in self.interfaces
            },
            "settings": {"concurrency": self.concurrency, "interval": self.interval},
        }

    def to_json(self, reveal: bool = False) -> str:
        return json.dumps(self.to_dict(reveal), indent=2)


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


def default_config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APPLICATION


def resolve_config_path(custom: str | Path | None = None) -> Path:
    """
    Returns the config file to use.

    Order: the explicit path, then $CFDNS_CONFIG, then the first existing
    config.yml / config.yaml in the config directory, then config.yml there.
    """
    if custom:
        return Path(custom)
    env_path = os.getenv("CFDNS_CONFIG")
    if env_path:
        return Path(env_path)
    config_dir = default_config_dir()
    for name in CONFIG_FILE_NAMES:
        candidate = config_dir / name
        if candidate.exists():
            return candidate
    return config_dir / CONFIG_FILE_NAMES[0]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def guess_zone(domain: str) -> str | None:
    """
    Returns the registrable domain of an FQDN, e.g. "example.co.uk" for
    "home.example.co.uk", or None if it has none.
    """
    ext = _extract(domain)
    if not ext.domain or not ext.suffix:
        return None
    return f"{ext.domain}.{ext.suffix}"


def load_config(custom: str | Path | None = None) -> AppConfig:
    """
    Reads and validates the configuration file.

    The API token may be supplied or overridden by $CLOUDFLARE_API_TOKEN.

    Args:
        custom: Explicit config file path (the --config option).

    Returns:
        The parsed AppConfig.

    Raises:
        ConfigLoadError: If the file is missing, is not valid YAML, or does
                         not have the expected shape.
    """
    path = resolve_config_path(custom)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"configuration file not found at {path}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to open configuration file at {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"failed to parse configuration {path}: {exc}") from exc

    config = parse_config(raw or {}, path)
    logger.debug("Loaded configuration from %s (%d interface(s)).", path, len(config.interfaces))
    return config


def parse_config(raw: Any, path: Path | None = None) -> AppConfig:
    """
    Validates an already-decoded config document.

    Args:
        raw: The decoded YAML document.
        path: Where it came from, used in error messages.

    Returns:
        The parsed AppConfig.

    Raises:
        ConfigLoadError: On any shape or value problem.
    """
    where = str(path) if path else "configuration"
    if not isinstance(raw, dict):
        raise ConfigLoadError(f"{where}: top level must be a mapping")

    cloudflare = raw.get("cloudflare") or {}
    if not isinstance(cloudflare, dict):
        raise ConfigLoadError(f"{where}: `cloudflare` must be a mapping")
    token = os.getenv("CLOUDFLARE_API_TOKEN") or cloudflare.get("token") or ""
    if not isinstance(token, str) or not token:
        raise ConfigLoadError(
            f"{where}: no Cloudflare API token (set cloudflare.token or CLOUDFLARE_API_TOKEN)"
        )

    interfaces_raw = raw.get("interfaces") or {}
    if not isinstance(interfaces_raw, dict):
        raise ConfigLoadError(f"{where}: `interfaces` must be a mapping of interface name to records")

    interfaces = tuple(
        _parse_interface(str(name), body, where) for name, body in interfaces_raw.items()
    )

    settings = raw.get("settings") or {}
    if not isinstance(settings, dict):
        raise ConfigLoadError(f"{where}: `settings` must be a mapping")
    concurrency = _positive_int(settings.get("concurrency", DEFAULT_CONCURRENCY), "concurrency", where)
    interval = _positive_int(settings.get("interval", DEFAULT_INTERVAL_SECONDS), "interval", where)

    return AppConfig(
        api_token=token,
        interfaces=interfaces,
        concurrency=concurrency,
        interval=interval,
        path=path,
    )


def _parse_interface(name: str, body: Any, where: str) -> InterfaceConfig:
    if body is None:
        return InterfaceConfig(name=name)
    if not isinstance(body, dict):
        raise ConfigLoadError(f"{where}: interface `{name}` must be a mapping with `records`")
    records_raw = body.get("records") or []
    if not isinstance(records_raw, list):
        raise ConfigLoadError(f"{where}: interface `{name}`: `records` must be a list")
    records = tuple(
        _parse_record(item, f"{where}: interface `{name}` record {index + 1}")
        for index, item in enumerate(records_raw)
    )
    return InterfaceConfig(name=name, records=records)


def _parse_record(item: Any, where: str) -> Record:
    if not isinstance(item, dict):
        raise ConfigLoadError(f"{where}: must be a mapping")

    domain = item.get("domain")
    if not isinstance(domain, str) or not domain.strip():
        raise ConfigLoadError(f"{where}: `domain` is required")
    domain = domain.strip().rstrip(".")

    kind_raw = item.get("type", item.get("kind"))
    try:
        kind = RecordKind(str(kind_raw).upper())
    except ValueError as exc:
        raise ConfigLoadError(f"{where}: `type` must be one of A, AAAA, BOTH (got {kind_raw!r})") from exc

    zone = item.get("zone")
    if zone is None:
        zone = guess_zone(domain)
        if zone is None:
            raise ConfigLoadError(f"{where}: cannot guess the zone of `{domain}`; set `zone`")
        logger.debug("Guessed zone %s for %s.", zone, domain)
    elif not isinstance(zone, str) or not zone.strip():
        raise ConfigLoadError(f"{where}: `zone` must be a non-empty string")

    web_lookup = item.get("web_lookup", False)
    if not isinstance(web_lookup, bool):
        raise ConfigLoadError(f"{where}: `web_lookup` must be true or false")

    return Record(domain=domain, zone=zone.strip(), kind=kind, web_lookup=web_lookup)


def _positive_int(value: Any, name: str, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigLoadError(f"{where}: settings.{name} must be a positive integer")
    return value
