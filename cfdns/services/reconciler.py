"""
cfdns/services/reconciler.py

Responsibility: Orchestrates the DDNS update cycle. For every configured
interface, selects its best addresses, then reconciles each of its records
against Cloudflare with bounded concurrency, creating or updating only what
differs.
Does NOT: make HTTP calls directly, read configuration files, or render output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from cfdns.config import DEFAULT_CONCURRENCY, InterfaceConfig, Record
from cfdns.exceptions import BatchFailedError, CfdnsError, NotAnIpRecordError
from cfdns.providers.dns_provider import DnsRecord, DNSProvider, IpAddress
from cfdns.services.address_selector import BestAddresses
from cfdns.services.address_source import AddressSource, best_addresses_by_interface
from cfdns.services.outcome_reporter import (
    OutcomeReporter,
    RecordReport,
    Skipped,
    Unchanged,
    UpdateOutcome,
    Updated,
)
from cfdns.services.public_ip_service import PublicIpService
from cfdns.services.zone_cache import ZoneCache

logger = logging.getLogger(__name__)

_FAMILY_NAMES = {4: "IPv4", 6: "IPv6"}

# Record types that occupy a name and therefore conflict with A/AAAA records
_CONFLICTING_TYPES = frozenset({"CNAME"})


@dataclass(frozen=True)
class ExistingRecords:
    """The records already published under one name, split by role."""

    a: DnsRecord | None = None
    aaaa: DnsRecord | None = None
    conflict: DnsRecord | None = None

    @classmethod
    def split(cls, records: Iterable[DnsRecord]) -> ExistingRecords:
        a = aaaa = conflict = None
        # Duplicates of one type: the first record listed is the one reconciled
        for record in records:
            if record.type == "A" and a is None:
                a = record
            elif record.type == "AAAA" and aaaa is None:
                aaaa = record
            elif record.type in _CONFLICTING_TYPES and conflict is None:
                conflict = record
        return cls(a=a, aaaa=aaaa, conflict=conflict)

    def for_version(self, version: int) -> DnsRecord | None:
        """The record a family's decision is made against, if any."""
        own = self.a if version == 4 else self.aaaa
        return own if own is not None else self.conflict


class RecordProcessor:
    """
    Reconciles the records of a single interface.

    Created once per interface after its best addresses are known. All
    records of the interface share the same addresses, zone cache, and
    public-IP memo.

    Collaborators:
        - DNSProvider: queries and (unless dry_run) writes records
        - ZoneCache: zone name -> zone id, shared across the run
        - PublicIpService: public address for web_lookup records
        - OutcomeReporter: receives every finished RecordReport
    """

    def __init__(
        self,
        interface: str,
        addresses: BestAddresses,
        provider: DNSProvider,
        zone_cache: ZoneCache,
        public_ip: PublicIpService,
        reporter: OutcomeReporter,
        dry_run: bool = False,
    ) -> None:
        self._interface = interface
        self._addresses = addresses
        self._provider = provider
        self._zone_cache = zone_cache
        self._public_ip = public_ip
        self._reporter = reporter
        self._dry_run = dry_run

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def batch_process(
        self, records: Sequence[Record], limit: int = DEFAULT_CONCURRENCY
    ) -> list[RecordReport]:
        """
        Reconciles every record with at most ``limit`` in flight at once.

        A failing record never cancels its siblings; its error is stored on
        its report and the batch carries on.

        Args:
            records: The interface's records, in configuration order.
            limit: Maximum number of records processed concurrently.

        Returns:
            One RecordReport per record, in the same order as ``records``.
        """
        semaphore = asyncio.Semaphore(limit)
        reports = [
            RecordReport(interface=self._interface, record=record, dry_run=self._dry_run)
            for record in records
        ]

        async def _run(report: RecordReport) -> None:
            async with semaphore:
                try:
                    await self.process(report)
                except CfdnsError as exc:
                    report.error = exc
                    logger.error(
                        "Failed to reconcile %s on %s: %s",
                        report.record.domain,
                        self._interface,
                        exc,
                    )
            await self._reporter.record_finished(report)

        results = await asyncio.gather(*(_run(r) for r in reports), return_exceptions=True)
        # Only non-CfdnsError bugs land here; re-raise once every sibling has finished
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return reports

    async def process(self, report: RecordReport) -> None:
        """
        Reconciles one record, filling in ``report`` per required family.

        Steps: desired address per family, zone id, one combined lookup of
        the existing records, then one decision per family.

        Raises:
            ZoneError, DnsProviderError, PublicIpLookupError, NotAnIpRecordError:
                The record is aborted; already-decided families keep their outcome.
        """
        record = report.record
        logger.info(
            "Processing %s record %s%s",
            record.kind.label,
            record.domain,
            " (dry-run)" if self._dry_run else "",
        )

        desired: dict[int, IpAddress | None] = {}
        for version in record.kind.versions:
            desired[version] = await self._desired_ip(record, version)

        zone_id = await self._zone_cache.resolve(record.zone)
        existing = ExistingRecords.split(await self._provider.list_records(zone_id, record.domain))

        for version in record.kind.versions:
            outcome = await self._reconcile_family(
                zone_id, record, version, desired[version], existing.for_version(version)
            )
            report.set_outcome(version, outcome)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _desired_ip(self, record: Record, version: int) -> IpAddress | None:
        local_ip = self._addresses.for_version(version)
        if not record.web_lookup:
            return local_ip
        return await self._public_ip.resolve_for(self._interface, local_ip)

    async def _reconcile_family(
        self,
        zone_id: str,
        record: Record,
        version: int,
        ip: IpAddress | None,
        current: DnsRecord | None,
    ) -> UpdateOutcome:
        """
        Decides and (unless dry-run) applies the change for one family.

        Returns:
            Skipped:   no desired address this cycle
            Updated:   record created or changed
            Unchanged: record already correct, nothing written

        Raises:
            NotAnIpRecordError: If the name is held by a non-IP record.
            DnsProviderError: If the write fails.
        """
        family = _FAMILY_NAMES[version]
        suffix = " (dry-run)" if self._dry_run else ""

        if ip is None:
            logger.warning(
                "No %s for %s on interface %s; skipping.", family, record.domain, self._interface
            )
            return Skipped()

        if current is None:
            logger.info("Creating new DNS record %s -> %s%s", record.domain, ip, suffix)
            if not self._dry_run:
                await self._provider.create_record(zone_id, record.domain, ip)
            return Updated(ip)

        current_ip = current.ip
        if current_ip is None:
            raise NotAnIpRecordError(record.domain, current.type)

        if current_ip == ip:
            logger.info("Skipping up-to-date record %s (%s)%s", record.domain, ip, suffix)
            return Unchanged(ip)

        logger.info("Updating DNS record %s: %s -> %s%s", record.domain, current_ip, ip, suffix)
        if not self._dry_run:
            await self._provider.update_record(zone_id, current, ip)
        return Updated(ip)


class ReconciliationEngine:
    """
    Runs one full reconciliation pass over all configured interfaces.

    Interfaces are handled one after another; records within an interface
    run concurrently. The zone cache is saved once at the end of the pass,
    whether or not anything failed and whether or not it is a dry run.

    Collaborators:
        - AddressSource: enumerates each interface's addresses
        - DNSProvider, ZoneCache, PublicIpService, OutcomeReporter: handed
          to one RecordProcessor per interface
    """

    def __init__(
        self,
        provider: DNSProvider,
        zone_cache: ZoneCache,
        address_source: AddressSource,
        reporter: OutcomeReporter,
        public_ip: PublicIpService | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        dry_run: bool = False,
    ) -> None:
        self._provider = provider
        self._zone_cache = zone_cache
        self._source = address_source
        self._reporter = reporter
        self._public_ip = public_ip or PublicIpService()
        self._concurrency = concurrency
        self._dry_run = dry_run

    async def run(self, interfaces: Iterable[InterfaceConfig]) -> list[RecordReport]:
        """
        Reconciles every record of every interface.

        Args:
            interfaces: The configured interfaces with their records.

        Returns:
            All RecordReports, grouped by interface in configuration order.

        Raises:
            BatchFailedError: After the pass, if any record or interface failed.
            Exception: The first non-CfdnsError raised by a record task, once
                       every interface has run and the cache is saved.
        """
        all_reports: list[RecordReport] = []
        interface_errors: dict[str, Exception] = {}
        unexpected: Exception | None = None

        try:
            for iface in interfaces:
                await self._reporter.interface_started(iface.name)
                try:
                    processor = await self.processor_for(iface.name)
                except CfdnsError as exc:
                    logger.error("Skipping interface %s: %s", iface.name, exc)
                    interface_errors[iface.name] = exc
                    continue
                try:
                    reports = await processor.batch_process(iface.records, self._concurrency)
                except Exception as exc:
                    logger.error("Unexpected error on interface %s: %r", iface.name, exc)
                    if unexpected is None:
                        unexpected = exc
                    continue
                all_reports.extend(reports)
        finally:
            await self._zone_cache.save()

        if unexpected is not None:
            raise unexpected

        failed = [r for r in all_reports if r.failed]
        if failed or interface_errors:
            raise BatchFailedError(failed, interface_errors)
        return all_reports

    async def processor_for(self, interface: str) -> RecordProcessor:
        """
        Selects an interface's addresses and builds its RecordProcessor.

        Raises:
            InterfaceNotFoundError: If the interface does not exist.
            AddressSourceError: If its addresses cannot be read.
        """
        logger.info("Discovering addresses on %s.", interface)
        addresses = await best_addresses_by_interface(self._source, interface)
        return RecordProcessor(
            interface=interface,
            addresses=addresses,
            provider=self._provider,
            zone_cache=self._zone_cache,
            public_ip=self._public_ip,
            reporter=self._reporter,
            dry_run=self._dry_run,
        )
