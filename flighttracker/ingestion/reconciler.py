"""
Session reconciler - stitches discrete reports into flight sessions.

This is the state machine at the heart of the ingestion engine. Each tick
hands it the validated, classified reports for the region; it

1. closes sessions that have been silent for longer than the session gap,
2. extends the active session of every aircraft in the batch, or opens a
   new one (closing the previous one first if the gap happened between
   ticks and is only visible now),
3. updates the running aggregates (counts, altitude max/mean, territory
   crossings, last known telemetry) one report at a time,
4. attaches a snapshot per report to its session,
5. closes stale sessions again, so sessions age out even on ticks that
   brought nothing new.

Everything happens inside the caller's SQLAlchemy session and nothing is
committed here: the pipeline commits once per tick, so a failure anywhere
leaves the database exactly as it was.

Active sessions are loaded once per tick for all aircraft in the batch and
indexed by icao24; there are no per-report queries.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from flighttracker.config import config
from flighttracker.ingestion.opensky_client import Report
from flighttracker.models import AircraftSnapshot, FlightSession, CLOSE_REASON_GAP_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    """What one reconcile pass changed."""
    snapshots_added: int = 0
    sessions_opened: int = 0
    sessions_extended: int = 0
    sessions_closed_by_gap: int = 0
    sessions_closed_stale: int = 0

    @property
    def sessions_closed(self) -> int:
        return self.sessions_closed_by_gap + self.sessions_closed_stale

    def to_dict(self) -> dict:
        return {
            'snapshots_added': self.snapshots_added,
            'sessions_opened': self.sessions_opened,
            'sessions_extended': self.sessions_extended,
            'sessions_closed_by_gap': self.sessions_closed_by_gap,
            'sessions_closed_stale': self.sessions_closed_stale,
        }


def new_session_from_report(report: Report) -> FlightSession:
    """Open a session seeded from its first report; counters start at zero."""
    ts = report.timestamp_utc
    return FlightSession(
        icao24=report.icao24,
        callsign=report.callsign,
        first_seen_utc=ts,
        last_seen_utc=ts,
        is_active=True,
        snapshot_count=0,
        airborne_snapshot_count=0,
        entered_territory_utc=ts if report.in_territory else None,
        exited_territory_utc=None,
        last_latitude=report.latitude,
        last_longitude=report.longitude,
        last_altitude=report.altitude,
        last_velocity=report.velocity,
        last_true_track=report.true_track,
        last_snapshot_utc=ts,
        last_known_in_territory=report.in_territory,
    )


def apply_report(session: FlightSession, report: Report) -> None:
    """
    Fold one report into a session's running aggregates.

    The report must belong to the session (same aircraft, within the gap).
    """
    ts = report.timestamp_utc

    # A late report from an earlier tick must not move last contact backwards
    if session.last_seen_utc is None or ts > session.last_seen_utc:
        session.last_seen_utc = ts
    session.last_latitude = report.latitude
    session.last_longitude = report.longitude
    session.last_altitude = report.altitude
    session.last_velocity = report.velocity
    session.last_true_track = report.true_track
    session.last_snapshot_utc = ts

    # Keep the most recent non-blank callsign
    if report.callsign and report.callsign.strip():
        session.callsign = report.callsign

    # Territory crossings
    was_inside = bool(session.last_known_in_territory)
    if not was_inside and report.in_territory:
        if session.entered_territory_utc is None:
            session.entered_territory_utc = ts
        session.exited_territory_utc = None
    elif was_inside and not report.in_territory:
        session.exited_territory_utc = ts
    session.last_known_in_territory = report.in_territory

    session.snapshot_count += 1

    # Altitude statistics: airborne samples only, single pass running mean
    if report.is_airborne:
        altitude = report.altitude
        session.airborne_snapshot_count += 1
        if session.max_altitude is None:
            session.max_altitude = altitude
        else:
            session.max_altitude = max(session.max_altitude, altitude)
        if session.avg_altitude is None:
            session.avg_altitude = altitude
        else:
            session.avg_altitude += (altitude - session.avg_altitude) / session.airborne_snapshot_count


class SessionReconciler:
    """
    Maintains flight sessions from per-tick report batches.

    Stateless between ticks: everything it needs lives in the database.
    """

    def __init__(self, session_gap_seconds: int):
        if session_gap_seconds <= 0:
            raise ValueError('session_gap_seconds must be positive')
        self.session_gap = timedelta(seconds=session_gap_seconds)

    @classmethod
    def from_config(cls) -> 'SessionReconciler':
        return cls(session_gap_seconds=config.ingestion.session_gap_seconds)

    # -------------------------------------------------------------------------
    # Stale-session closing
    # -------------------------------------------------------------------------

    def close_stale_sessions(self, db: Session, now: datetime) -> int:
        """
        Close every active session silent since before now - gap.

        Idempotent: only active sessions are selected.
        """
        cutoff = now - self.session_gap
        stale = db.scalars(
            select(FlightSession).where(
                FlightSession.is_active.is_(True),
                FlightSession.last_seen_utc < cutoff,
            )
        ).all()

        for session in stale:
            session.close(CLOSE_REASON_GAP_TIMEOUT)

        if stale:
            logger.info(f'Closed {len(stale)} stale sessions (cutoff {cutoff:%Y-%m-%dT%H:%M:%S})')

        return len(stale)

    # -------------------------------------------------------------------------
    # Session stitching
    # -------------------------------------------------------------------------

    def _load_active_sessions(self, db: Session, icaos: Iterable[str]) -> Dict[str, FlightSession]:
        """Active sessions for the given aircraft, keyed by icao24 (one query)."""
        icaos = list(icaos)
        if not icaos:
            return {}

        rows = db.scalars(
            select(FlightSession)
            .where(
                FlightSession.is_active.is_(True),
                FlightSession.icao24.in_(icaos),
            )
            .order_by(FlightSession.last_seen_utc)
        ).all()

        by_icao: Dict[str, FlightSession] = {}
        for session in rows:
            previous = by_icao.get(session.icao24)
            if previous is not None:
                # More than one active session should never exist; keep the newest
                logger.warning(f'Multiple active sessions for {session.icao24}; closing the older one')
                previous.close(CLOSE_REASON_GAP_TIMEOUT)
            by_icao[session.icao24] = session
        return by_icao

    def apply_reports(self, db: Session, reports: List[Report]) -> ReconcileStats:
        """
        Stitch a batch of reports into sessions and stage their snapshots.

        Reports are grouped per aircraft and processed in timestamp order;
        reports sharing a timestamp keep their feed order (stable sort).
        """
        stats = ReconcileStats()
        if not reports:
            return stats

        groups: Dict[str, List[Report]] = defaultdict(list)
        for report in reports:
            groups[report.icao24].append(report)

        active = self._load_active_sessions(db, groups.keys())

        snapshots: List[AircraftSnapshot] = []
        for icao24, group in groups.items():
            group.sort(key=lambda r: r.timestamp)
            session: Optional[FlightSession] = active.get(icao24)
            extended = False

            for report in group:
                if session is None:
                    session = new_session_from_report(report)
                    db.add(session)
                    stats.sessions_opened += 1
                elif report.timestamp_utc - session.last_seen_utc > self.session_gap:
                    # Gap between ticks, only visible now
                    session.close(CLOSE_REASON_GAP_TIMEOUT)
                    stats.sessions_closed_by_gap += 1
                    session = new_session_from_report(report)
                    db.add(session)
                    stats.sessions_opened += 1
                elif not extended and session.id is not None:
                    extended = True
                    stats.sessions_extended += 1

                apply_report(session, report)

                snapshot = AircraftSnapshot.from_report(report)
                snapshot.flight_session = session
                snapshots.append(snapshot)

            active[icao24] = session

        db.add_all(snapshots)
        stats.snapshots_added = len(snapshots)
        return stats

    def reconcile(self, db: Session, reports: List[Report], now: datetime) -> ReconcileStats:
        """
        Run one full tick of session maintenance; the caller commits.

        Stale sessions are closed before the batch (so an aircraft returning
        after a long silence starts a fresh session) and after it (so
        sessions age out on ticks without data for them).
        """
        closed_before = self.close_stale_sessions(db, now)
        # Make the closes visible to the active-session query below
        db.flush()

        stats = self.apply_reports(db, reports)
        db.flush()

        closed_after = self.close_stale_sessions(db, now)
        stats.sessions_closed_stale = closed_before + closed_after

        logger.debug(
            f'Reconciled {stats.snapshots_added} snapshots: '
            f'{stats.sessions_opened} opened, {stats.sessions_extended} extended, '
            f'{stats.sessions_closed} closed'
        )
        return stats
