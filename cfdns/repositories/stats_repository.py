"""
cfdns/repositories/stats_repository.py

Responsibility: Provides low-level read/write access to the RecordStats table
in SQLite via SQLModel.
Does NOT: contain business logic, IP fetching, or rendering.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlmodel import Session, select

from cfdns.db.models import RecordStats

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StatsRepository:
    """
    Manages persistence of per-record, per-family reconciliation statistics.

    Rows are created on first access and updated after every live run by
    StatsService.

    Collaborators:
        - Session: SQLModel DB session injected at construction time
    """

    def __init__(self, session: Session) -> None:
        """
        Initialises the repository with an active DB session.

        Args:
            session: An open SQLModel Session.
        """
        self._session = session

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def get_or_create(self, record_name: str, family: str) -> RecordStats:
        """
        Returns the row for the given FQDN and family, creating it if absent.

        Args:
            record_name: The fully-qualified DNS name, e.g. "home.example.com".
            family: "A" or "AAAA".

        Returns:
            The RecordStats ORM instance.
        """
        stats = self.get(record_name, family)

        if stats is None:
            logger.debug("Creating RecordStats row for %s/%s.", record_name, family)
            stats = RecordStats(record_name=record_name, family=family)
            self._session.add(stats)
            self._session.commit()
            self._session.refresh(stats)

        return stats

    def get(self, record_name: str, family: str) -> RecordStats | None:
        """
        Returns the row for the given FQDN and family, or None if absent.
        """
        statement = select(RecordStats).where(
            RecordStats.record_name == record_name, RecordStats.family == family
        )
        return self._session.exec(statement).first()

    def get_all(self) -> list[RecordStats]:
        """
        Returns all rows ordered by record name, then family.

        Returns:
            A list of RecordStats instances, possibly empty.
        """
        statement = select(RecordStats).order_by(RecordStats.record_name, RecordStats.family)
        return list(self._session.exec(statement).all())

    def save(self, stats: RecordStats) -> RecordStats:
        """
        Persists a RecordStats instance to the database.

        Returns:
            The refreshed RecordStats instance after commit.
        """
        self._session.add(stats)
        self._session.commit()
        self._session.refresh(stats)
        return stats

    def record_check(self, record_name: str, family: str) -> RecordStats:
        """
        Updates the last_checked timestamp for the given record family.
        """
        stats = self.get_or_create(record_name, family)
        stats.last_checked = _now()
        return self.save(stats)

    def record_update(self, record_name: str, family: str) -> RecordStats:
        """
        Increments the update counter and sets last_checked and last_updated.
        """
        stats = self.get_or_create(record_name, family)
        now = _now()
        stats.last_checked = now
        stats.last_updated = now
        stats.updates += 1
        return self.save(stats)

    def record_failure(self, record_name: str, family: str) -> RecordStats:
        """
        Increments the failure counter for the given record family.
        """
        stats = self.get_or_create(record_name, family)
        stats.failures += 1
        return self.save(stats)
