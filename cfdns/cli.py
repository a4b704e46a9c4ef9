"""
cfdns/cli.py

Responsibility: Command-line entry point. Parses arguments, configures
logging, and dispatches to the update, watch, show, interfaces, cache and
stats commands.
Does NOT: reconcile records itself; that is ReconciliationEngine's job.

Usage examples::

    cfdns update --dry-run
    cfdns -v watch --interval 600
    cfdns show --json
    cfdns interfaces
    cfdns cache clear
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from ipaddress import IPv4Address, IPv6Address

from sqlmodel import Session

from cfdns.config import load_config
from cfdns.db.database import create_db_engine, default_db_path, init_db
from cfdns.exceptions import AddressSourceError, BatchFailedError, CfdnsError, ConfigLoadError
from cfdns.repositories.stats_repository import StatsRepository
from cfdns.repositories.zone_cache_repository import ZoneCacheRepository
from cfdns.scheduler import create_scheduler, update_once
from cfdns.services.address_source import NetlinkAddressSource, best_addresses_by_interface
from cfdns.services.stats_service import StatsService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def running_under_systemd() -> bool:
    return "JOURNAL_STREAM" in os.environ


def configure_logging(verbose: int) -> None:
    """
    Configures the root logger once for the process.

    Verbosity: 0 -> ERROR, 1 -> INFO, 2+ -> DEBUG. Under systemd, INFO
    without timestamps since journald adds its own.
    """
    if running_under_systemd():
        level = logging.DEBUG if verbose >= 2 else logging.INFO
        fmt = "%(levelname)s %(message)s"
    else:
        level = {0: logging.ERROR, 1: logging.INFO}.get(verbose, logging.DEBUG)
        fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    logging.basicConfig(level=level, format=fmt, force=True)
    if verbose < 2:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def console_enabled(verbose: int) -> bool:
    """Console lines are shown only when nothing else is writing to the terminal."""
    return verbose == 0 and not running_under_systemd()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``cfdns`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="cfdns",
        description="A quick tool to manage Cloudflare DDNS records.",
    )
    parser.add_argument("--config", "-c", help="Path to the configuration file.")
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for even more).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    update = sub.add_parser("update", help="Update DNS records based on config")
    update.add_argument(
        "--dry-run", "-d",
        action="store_true",
        help="Simulate the update without making actual changes.",
    )
    update.add_argument("--no-stats", action="store_true", help="Do not record statistics.")

    watch = sub.add_parser("watch", help="Run updates periodically until interrupted")
    watch.add_argument(
        "--interval", "-i",
        type=int,
        help="Seconds between runs (default: settings.interval from the config).",
    )
    watch.add_argument("--dry-run", "-d", action="store_true")
    watch.add_argument("--no-stats", action="store_true")

    show = sub.add_parser("show", help="Show the current DNS configuration")
    show.add_argument("--json", "-j", action="store_true", help="Display configuration in JSON format.")
    show.add_argument("--reveal", action="store_true", help="Reveal auth token in output.")

    sub.add_parser("interfaces", help="List interfaces and their best addresses")

    cache = sub.add_parser("cache", help="Inspect or clear the zone id cache")
    cache.add_argument("action", choices=["show", "clear"])

    sub.add_parser("stats", help="Show per-record update statistics")
    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_update(ns: argparse.Namespace) -> int:
    try:
        asyncio.run(
            update_once(
                ns.config,
                dry_run=ns.dry_run,
                record_stats=not ns.no_stats,
                console=console_enabled(ns.verbose),
            )
        )
    except BatchFailedError as exc:
        for name, error in exc.interface_errors.items():
            print(f"Interface {name}: {error}", file=sys.stderr)
        print(f"Update failed: {exc}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


async def _watch(ns: argparse.Namespace, interval: int) -> None:
    scheduler = create_scheduler(
        ns.config,
        interval,
        dry_run=ns.dry_run,
        record_stats=not ns.no_stats,
        console=console_enabled(ns.verbose),
    )
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def _cmd_watch(ns: argparse.Namespace) -> int:
    # A broken config fails here, not on every tick
    config = load_config(ns.config)
    interval = ns.interval or config.interval
    try:
        asyncio.run(_watch(ns, interval))
    except KeyboardInterrupt:
        logger.info("Interrupted; stopping.")
    return EXIT_OK


def _cmd_show(ns: argparse.Namespace) -> int:
    config = load_config(ns.config)
    if ns.json:
        print(config.to_json(reveal=ns.reveal))
        return EXIT_OK

    print("CFDNS Config")
    token = config.api_token if ns.reveal else "{Hidden for privacy. Use --reveal to show}"
    print(f"Token: {token}")
    for iface in config.interfaces:
        print(f"DNS Records for {iface.name}")
        for index, record in enumerate(iface.records, start=1):
            print(f"      {index}. {record.domain} {record.kind.value}")
            print(
                f"          Zone: {record.zone}  |  Web Lookup: "
                f"{'Enabled' if record.web_lookup else 'Disabled'}"
            )
    return EXIT_OK


async def _list_interfaces() -> list[tuple[str, IPv4Address | None, IPv6Address | None]]:
    source = NetlinkAddressSource()
    rows = []
    for name in await source.list_interfaces():
        best = await best_addresses_by_interface(source, name)
        rows.append((name, best.ipv4, best.ipv6))
    return rows


def _cmd_interfaces(ns: argparse.Namespace) -> int:
    try:
        rows = asyncio.run(_list_interfaces())
    except AddressSourceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    for name, ipv4, ipv6 in rows:
        print(f"{name:<16} IPv4: {str(ipv4 or '-'):<16} IPv6: {ipv6 or '-'}")
    return EXIT_OK


def _cmd_cache(ns: argparse.Namespace) -> int:
    repo = ZoneCacheRepository()
    if ns.action == "clear":
        deleted = repo.clear()
        print(f"Deleted {repo.path}" if deleted else f"No zone cache at {repo.path}")
        return EXIT_OK
    print(json.dumps(repo.load(), indent=2, sort_keys=True))
    return EXIT_OK


def _cmd_stats(ns: argparse.Namespace) -> int:
    if not default_db_path().exists():
        print("No statistics recorded yet.")
        return EXIT_OK
    engine = create_db_engine()
    init_db(engine)
    with Session(engine) as session:
        rows = asyncio.run(StatsService(StatsRepository(session)).get_all())
        for row in rows:
            print(
                f"{row.record_name:<32} {row.family:<4} updates={row.updates} "
                f"failures={row.failures} last_checked={row.last_checked or '-'} "
                f"last_updated={row.last_updated or '-'}"
            )
    return EXIT_OK


_COMMANDS = {
    "update": _cmd_update,
    "watch": _cmd_watch,
    "show": _cmd_show,
    "interfaces": _cmd_interfaces,
    "cache": _cmd_cache,
    "stats": _cmd_stats,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses arguments, configures logging, and dispatches the subcommand.
    Exits 0 on success, 1 when a run failed, 2 on configuration errors.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)
    configure_logging(ns.verbose)

    try:
        code = _COMMANDS[ns.command](ns)
    except ConfigLoadError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        code = EXIT_CONFIG
    except (CfdnsError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        code = EXIT_FAILED
    sys.exit(code)


if __name__ == "__main__":
    main()
