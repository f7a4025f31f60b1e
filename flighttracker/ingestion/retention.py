"""
Retention cleanup for snapshots and closed sessions.

Snapshots are removed purely by age. Sessions are removed only once they
are closed and their end is older than the session retention. Because
session retention is never shorter than snapshot retention, every
snapshot that still points at a session is younger than that session's
deletion horizon; the foreign key's ON DELETE SET NULL is only a backstop.

Both deletes are single set-based statements - historical ranges are
never loaded into memory.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from flighttracker.config import config
from flighttracker.models import AircraftSnapshot, FlightSession, SessionLocal

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    snapshots_deleted: int
    sessions_deleted: int
    snapshot_cutoff: datetime
    session_cutoff: datetime

    def to_dict(self) -> dict:
        return {
            'snapshots_deleted': self.snapshots_deleted,
            'sessions_deleted': self.sessions_deleted,
            'snapshot_cutoff': self.snapshot_cutoff.isoformat(),
            'session_cutoff': self.session_cutoff.isoformat(),
        }


class RetentionCleaner:
    """
    Deletes old data at most once per cleanup interval.

    The last-run time lives in process memory, so a freshly started process
    cleans up on its first eligible tick.
    """

    def __init__(
        self,
        snapshot_retention_days: int,
        session_retention_days: int,
        cleanup_every_hours: int = 6,
        session_factory: Optional[sessionmaker] = None,
    ):
        if session_retention_days < snapshot_retention_days:
            raise ValueError('session_retention_days must be >= snapshot_retention_days')
        if snapshot_retention_days <= 0 or cleanup_every_hours <= 0:
            raise ValueError('retention days and cleanup interval must be positive')

        self.snapshot_retention = timedelta(days=snapshot_retention_days)
        self.session_retention = timedelta(days=session_retention_days)
        self.cleanup_every = timedelta(hours=cleanup_every_hours)
        self.session_factory = session_factory or SessionLocal

        self._last_run: Optional[datetime] = None
        self.last_result: Optional[CleanupResult] = None

    @classmethod
    def from_config(cls, session_factory: Optional[sessionmaker] = None) -> 'RetentionCleaner':
        return cls(
            snapshot_retention_days=config.retention.snapshot_retention_days,
            session_retention_days=config.retention.session_retention_days,
            cleanup_every_hours=config.retention.cleanup_every_hours,
            session_factory=session_factory,
        )

    @property
    def last_run(self) -> Optional[datetime]:
        return self._last_run

    def is_due(self, now: datetime) -> bool:
        return self._last_run is None or (now - self._last_run) >= self.cleanup_every

    def run_if_due(self, now: datetime) -> Optional[CleanupResult]:
        """Run cleanup if the interval has elapsed; returns None otherwise."""
        if not self.is_due(now):
            return None
        result = self.cleanup(now)
        self._last_run = now
        return result

    def cleanup(self, now: datetime) -> CleanupResult:
        """Delete expired snapshots and closed sessions in one transaction."""
        snapshot_cutoff = now - self.snapshot_retention
        session_cutoff = now - self.session_retention

        with self.session_factory() as db:
            snapshots_result = db.execute(
                delete(AircraftSnapshot)
                .where(AircraftSnapshot.timestamp_utc < snapshot_cutoff)
                .execution_options(synchronize_session=False)
            )

            sessions_result = db.execute(
                delete(FlightSession)
                .where(
                    FlightSession.is_active.is_(False),
                    FlightSession.end_utc.is_not(None),
                    FlightSession.end_utc < session_cutoff,
                )
                .execution_options(synchronize_session=False)
            )

            db.commit()

        result = CleanupResult(
            snapshots_deleted=snapshots_result.rowcount,
            sessions_deleted=sessions_result.rowcount,
            snapshot_cutoff=snapshot_cutoff,
            session_cutoff=session_cutoff,
        )
        self.last_result = result

        logger.info(
            f'Cleanup done. Deleted snapshots={result.snapshots_deleted}, '
            f'sessions={result.sessions_deleted}. '
            f'SnapCutoff={snapshot_cutoff.isoformat()}, SessionCutoff={session_cutoff.isoformat()}'
        )
        return result
