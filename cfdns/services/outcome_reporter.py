"""
cfdns/services/outcome_reporter.py

Responsibility: Defines the per-family UpdateOutcome variants, the
pre-allocated RecordReport handle the reconciler fills in, and the reporters
that render finished reports.
Does NOT: make decisions about records, or know how outcomes were produced.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Protocol, TextIO, Union, runtime_checkable

from cfdns.config import Record
from cfdns.providers.dns_provider import IpAddress

logger = logging.getLogger(__name__)

_FAMILY_NAMES = {4: "IPv4", 6: "IPv6"}


# ---------------------------------------------------------------------------
# Outcome variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Updated:
    """The record was created or changed (or would be, in a dry run)."""

    ip: IpAddress


@dataclass(frozen=True)
class Unchanged:
    """The record already pointed at the desired address."""

    ip: IpAddress


@dataclass(frozen=True)
class Skipped:
    """The family is required but no address could be found this cycle."""


@dataclass(frozen=True)
class NotApplicable:
    """The record's kind does not manage this family."""


UpdateOutcome = Union[Updated, Unchanged, Skipped, NotApplicable]


@dataclass
class RecordReport:
    """
    Per-record reporting handle, created before the record's task starts.

    The reconciler sets one outcome per required family, or an error when
    the record failed. Families the record does not manage stay
    NotApplicable.
    """

    interface: str
    record: Record
    dry_run: bool = False
    ipv4: UpdateOutcome = field(default_factory=NotApplicable)
    ipv6: UpdateOutcome = field(default_factory=NotApplicable)
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def outcome(self, version: int) -> UpdateOutcome:
        return self.ipv4 if version == 4 else self.ipv6

    def set_outcome(self, version: int, outcome: UpdateOutcome) -> None:
        if version == 4:
            self.ipv4 = outcome
        else:
            self.ipv6 = outcome


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_outcome(version: int, outcome: UpdateOutcome) -> str | None:
    """
    Renders one family's outcome, or None for NotApplicable.
    """
    family = _FAMILY_NAMES[version]
    if isinstance(outcome, Updated):
        return f"{family} updated => {outcome.ip}"
    if isinstance(outcome, Unchanged):
        return f"{family} unchanged ({outcome.ip})"
    if isinstance(outcome, Skipped):
        return f"{family} not found!"
    if isinstance(outcome, NotApplicable):
        return None
    raise TypeError(f"unknown outcome {outcome!r}")


def render_report(report: RecordReport) -> str:
    """
    Renders a finished record as a single line, e.g.
    ``home.example.com   IPv4 updated => 1.2.3.4 IPv6 unchanged (2001:db8::1)``.
    """
    if report.failed:
        return f"{report.record.domain}   failed: {report.error}"

    parts = [
        text
        for text in (render_outcome(4, report.ipv4), render_outcome(6, report.ipv6))
        if text is not None
    ]
    summary = " ".join(parts) if parts else "No updates performed"
    if report.dry_run:
        summary += " (dry-run)"
    return f"{report.record.domain}   {summary}"


# ---------------------------------------------------------------------------
# Reporter contract and implementations
# ---------------------------------------------------------------------------


@runtime_checkable
class OutcomeReporter(Protocol):
    """
    Consumer of reconciliation results.

    Implementations see only the RecordReport, never the reconciler.
    """

    async def interface_started(self, interface: str) -> None:
        ...

    async def record_finished(self, report: RecordReport) -> None:
        ...


class ConsoleReporter:
    """Prints human-readable progress lines to a stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    async def interface_started(self, interface: str) -> None:
        print(f"Updating Records for: {interface}", file=self._stream)

    async def record_finished(self, report: RecordReport) -> None:
        print(render_report(report), file=self._stream)


class LoggingReporter:
    """Sends the same lines through logging, for journald and verbose runs."""

    async def interface_started(self, interface: str) -> None:
        logger.info("Updating records for interface %s.", interface)

    async def record_finished(self, report: RecordReport) -> None:
        level = logging.ERROR if report.failed else logging.INFO
        logger.log(level, "%s", render_report(report))


class CompositeReporter:
    """Forwards every call to each wrapped reporter in order."""

    def __init__(self, *reporters: OutcomeReporter) -> None:
        self._reporters = reporters

    async def interface_started(self, interface: str) -> None:
        for reporter in self._reporters:
            await reporter.interface_started(interface)

    async def record_finished(self, report: RecordReport) -> None:
        for reporter in self._reporters:
            await reporter.record_finished(report)
