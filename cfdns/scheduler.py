"""
cfdns/scheduler.py

Responsibility: Wires the collaborators for one reconciliation run, and sets
up the APScheduler AsyncIOScheduler that repeats that run in watch mode.
Does NOT: contain reconciliation logic, parse arguments, or make HTTP calls
directly; those are delegated to ReconciliationEngine and its collaborators.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from cfdns.config import AppConfig, load_config
from cfdns.db.database import create_db_engine, init_db
from cfdns.exceptions import CfdnsError
from cfdns.providers.cloudflare_client import CloudflareClient
from cfdns.repositories.stats_repository import StatsRepository
from cfdns.repositories.zone_cache_repository import ZoneCacheRepository
from cfdns.services.address_source import AddressSource, NetlinkAddressSource
from cfdns.services.outcome_reporter import (
    CompositeReporter,
    ConsoleReporter,
    LoggingReporter,
    OutcomeReporter,
    RecordReport,
)
from cfdns.services.public_ip_service import PublicIpService
from cfdns.services.reconciler import ReconciliationEngine
from cfdns.services.stats_service import StatsReporter, StatsService
from cfdns.services.zone_cache import ZoneCache

logger = logging.getLogger(__name__)

# Job ID used to identify the update job in APScheduler
_JOB_ID = "cfdns_update"

# Ambient timeout for every Cloudflare API call
PROVIDER_TIMEOUT_SECONDS = 30.0


async def run_update(
    config: AppConfig,
    reporter: OutcomeReporter,
    *,
    dry_run: bool = False,
    address_source: AddressSource | None = None,
    cache_repository: ZoneCacheRepository | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> list[RecordReport]:
    """
    Runs one reconciliation pass for a loaded configuration.

    Builds the Cloudflare client, loads the zone cache, and hands everything
    to a ReconciliationEngine. The zone cache is saved at the end even if
    records failed.

    Args:
        config: The parsed configuration.
        reporter: Receives every finished record.
        dry_run: Decide everything, write nothing to Cloudflare.
        address_source: Defaults to NetlinkAddressSource.
        cache_repository: Defaults to the per-user zones.json.
        http_client: Shared client for provider calls; one is created (and
                     closed) when omitted.

    Returns:
        Every RecordReport of the pass.

    Raises:
        BatchFailedError: If any record or interface failed.
    """
    if http_client is None:
        async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS) as client:
            return await run_update(
                config,
                reporter,
                dry_run=dry_run,
                address_source=address_source,
                cache_repository=cache_repository,
                http_client=client,
            )

    provider = CloudflareClient(http_client=http_client, api_token=config.api_token)
    zone_cache = ZoneCache.load(provider, cache_repository or ZoneCacheRepository())
    engine = ReconciliationEngine(
        provider=provider,
        zone_cache=zone_cache,
        address_source=address_source or NetlinkAddressSource(),
        reporter=reporter,
        public_ip=PublicIpService(),
        concurrency=config.concurrency,
        dry_run=dry_run,
    )
    return await engine.run(config.interfaces)


async def update_once(
    config_path: str | Path | None = None,
    *,
    dry_run: bool = False,
    record_stats: bool = True,
    console: bool = True,
) -> list[RecordReport]:
    """
    Loads the configuration and runs one pass with the standard reporters.

    Console output goes to stdout when ``console`` is set, otherwise through
    logging. Statistics go to the SQLite database unless ``record_stats`` is
    False.

    Raises:
        ConfigLoadError: If the configuration cannot be loaded.
        BatchFailedError: If any record or interface failed.
    """
    config = load_config(config_path)
    display: OutcomeReporter = ConsoleReporter() if console else LoggingReporter()

    if not record_stats:
        return await run_update(config, display, dry_run=dry_run)

    db_engine = create_db_engine()
    init_db(db_engine)
    with Session(db_engine) as session:
        stats = StatsReporter(StatsService(StatsRepository(session)))
        return await run_update(config, CompositeReporter(display, stats), dry_run=dry_run)


# ---------------------------------------------------------------------------
# Scheduler job
# ---------------------------------------------------------------------------


async def _update_job(
    config_path: str | Path | None,
    dry_run: bool,
    record_stats: bool,
    console: bool,
) -> None:
    """
    APScheduler job: runs one pass and logs (never raises) its failure so
    the next interval still fires. The config file is re-read every run.
    """
    logger.debug("Update job triggered.")
    try:
        reports = await update_once(
            config_path, dry_run=dry_run, record_stats=record_stats, console=console
        )
    except CfdnsError as exc:
        logger.error("Update run failed: %s", exc)
        return
    logger.info("Update run finished: %d record(s) reconciled.", len(reports))


def create_scheduler(
    config_path: str | Path | None,
    interval_seconds: int,
    *,
    dry_run: bool = False,
    record_stats: bool = True,
    console: bool = True,
) -> AsyncIOScheduler:
    """
    Creates and returns a configured AsyncIOScheduler with the update job.

    The job runs immediately on start (next_run_time=now) and then at the
    given interval.

    Args:
        config_path: Config file passed to every run.
        interval_seconds: Seconds between runs.

    Returns:
        A configured but not yet started AsyncIOScheduler.
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _update_job,
        trigger="interval",
        seconds=interval_seconds,
        id=_JOB_ID,
        kwargs={
            "config_path": config_path,
            "dry_run": dry_run,
            "record_stats": record_stats,
            "console": console,
        },
        # NOTE: next_run_time=now triggers the first run immediately instead of after one interval.
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,  # Prevent overlapping runs if one takes longer than the interval
    )
    logger.info("Update job scheduled, interval: %ds.", interval_seconds)
    return scheduler
