"""
cfdns/db/models.py

Responsibility: Defines all SQLModel table models used by the application.
Does NOT: contain business logic, repositories, or session management.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

# ---------------------------------------------------------------------------
# RecordStats: per-record, per-family reconciliation counters
# ---------------------------------------------------------------------------


class RecordStats(SQLModel, table=True):
    """
    Tracks check, update and failure counts for each managed record family.

    One row per (FQDN, family). Updated by StatsRepository after every
    live reconciliation run, whether or not a change was written.
    """

    __table_args__ = (UniqueConstraint("record_name", "family"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    # Fully-qualified DNS name, e.g. "home.example.com"
    record_name: str = Field(index=True)

    # "A" or "AAAA"
    family: str = Field(default="A")

    last_checked: Optional[datetime] = Field(default=None)
    last_updated: Optional[datetime] = Field(default=None)

    # Cumulative counters since the record family was first tracked
    updates: int = Field(default=0)
    failures: int = Field(default=0)
