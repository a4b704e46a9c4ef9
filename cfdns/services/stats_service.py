"""
cfdns/services/stats_service.py

Responsibility: Provides a business-level API for recording and retrieving
per-record reconciliation statistics, and the reporter that feeds it from
finished RecordReports. Delegates all persistence to StatsRepository.
Does NOT: make HTTP calls, read configuration, or decide what to update.
"""

from __future__ import annotations

import logging

from cfdns.db.models import RecordStats
from cfdns.providers.dns_provider import IP_RECORD_TYPES
from cfdns.repositories.stats_repository import StatsRepository
from cfdns.services.outcome_reporter import RecordReport, Skipped, Unchanged, Updated

logger = logging.getLogger(__name__)


class StatsService:
    """
    Records and retrieves per-record reconciliation statistics.

    Wraps StatsRepository with intent-named methods.

    Collaborators:
        - StatsRepository: handles all database access for RecordStats rows
    """

    def __init__(self, stats_repo: StatsRepository) -> None:
        """
        Initialises the service with a stats repository.

        Args:
            stats_repo: An initialised StatsRepository.
        """
        self._repo = stats_repo

    async def record_checked(self, record_name: str, family: str) -> RecordStats:
        """
        Records that a record family was checked and found correct (or skipped).
        """
        return self._repo.record_check(record_name, family)

    async def record_updated(self, record_name: str, family: str) -> RecordStats:
        """
        Records a successful create/update of a record family.
        """
        logger.debug("Stats: update recorded for %s/%s.", record_name, family)
        return self._repo.record_update(record_name, family)

    async def record_failed(self, record_name: str, family: str) -> RecordStats:
        """
        Records a failed reconciliation of a record family.
        """
        logger.debug("Stats: failure recorded for %s/%s.", record_name, family)
        return self._repo.record_failure(record_name, family)

    async def get_all(self) -> list[RecordStats]:
        """
        Returns all RecordStats rows ordered by record name and family.
        """
        return self._repo.get_all()


class StatsReporter:
    """
    OutcomeReporter that turns finished RecordReports into statistics.

    Dry-run reports are ignored so simulated updates never count.
    A failed record counts one failure for every family its kind manages.

    Collaborators:
        - StatsService: receives the intent-named calls
    """

    def __init__(self, stats_service: StatsService) -> None:
        self._stats = stats_service

    async def interface_started(self, interface: str) -> None:
        return None

    async def record_finished(self, report: RecordReport) -> None:
        if report.dry_run:
            return

        domain = report.record.domain
        for version in report.record.kind.versions:
            family = IP_RECORD_TYPES[version]
            if report.failed:
                await self._stats.record_failed(domain, family)
                continue
            outcome = report.outcome(version)
            if isinstance(outcome, Updated):
                await self._stats.record_updated(domain, family)
            elif isinstance(outcome, (Unchanged, Skipped)):
                await self._stats.record_checked(domain, family)
