"""
FlightSession model - one continuous period of contact with an aircraft.

A session is opened on the first report for an aircraft and extended by
every later report until the aircraft goes silent for longer than the
session gap. Running aggregates (counts, altitude statistics, territory
crossings, last known position) are maintained incrementally by the
session reconciler so no query ever has to scan the snapshots.

Design notes:
- At most one active session per aircraft (enforced by the reconciler)
- Indexed for the reconciler's "active sessions for these aircraft" lookup
  and for the stale-session sweep
"""

from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import String, Float, Integer, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flighttracker.models.base import Base

if TYPE_CHECKING:
    from flighttracker.models.aircraft_snapshot import AircraftSnapshot

CLOSE_REASON_GAP_TIMEOUT = 'gap_timeout'


class FlightSession(Base):
    """
    Aggregate of all snapshots received for one aircraft without a gap.

    Identity is (icao24, first_seen_utc); the surrogate id is what
    snapshots reference.
    """

    __tablename__ = 'flight_sessions'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    icao24: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        comment='ICAO24 hex transponder address'
    )

    # Most recent non-blank callsign
    callsign: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='Flight callsign (e.g., SAS1234)'
    )

    first_seen_utc: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment='Timestamp of the first report in this session'
    )

    last_seen_utc: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment='Timestamp of the latest report in this session'
    )

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment='Session is still receiving reports'
    )

    end_utc: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='Set to last_seen_utc when the session closes'
    )

    close_reason: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment='Why the session closed (gap_timeout)'
    )

    # Counters - every sample vs. airborne samples only (divisor for avg_altitude)
    snapshot_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment='Snapshots attached to this session'
    )

    airborne_snapshot_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment='Airborne snapshots with a positive altitude'
    )

    # Altitude statistics (airborne samples only)
    max_altitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Maximum airborne altitude in meters'
    )

    avg_altitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Running mean airborne altitude in meters'
    )

    # Territory crossings
    entered_territory_utc: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='First entry into the territory'
    )

    exited_territory_utc: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='Latest exit from the territory (cleared on re-entry)'
    )

    last_known_in_territory: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment='Territory membership of the latest report'
    )

    # Last known telemetry
    last_latitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Latitude in decimal degrees'
    )

    last_longitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Longitude in decimal degrees'
    )

    last_altitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Barometric altitude in meters'
    )

    last_velocity: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Ground speed in m/s'
    )

    last_true_track: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='True track in degrees [0, 360)'
    )

    last_snapshot_utc: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='Timestamp of the latest attached snapshot'
    )

    snapshots: Mapped[List['AircraftSnapshot']] = relationship(
        back_populates='flight_session',
        passive_deletes=True,
    )

    __table_args__ = (
        # Reconciler lookup: active session for a set of aircraft
        Index('ix_flight_sessions_icao_active', 'icao24', 'is_active'),
        # Stale-session sweep
        Index('ix_flight_sessions_active_last_seen', 'is_active', 'last_seen_utc'),
        Index('ix_flight_sessions_first_seen', 'first_seen_utc'),
        Index('ix_flight_sessions_last_snapshot', 'last_snapshot_utc'),
        Index('ix_flight_sessions_entered_territory', 'entered_territory_utc'),
    )

    def __repr__(self) -> str:
        state = 'active' if self.is_active else (self.close_reason or 'closed')
        return f'<FlightSession {self.icao24} {self.callsign or "?"} {state}>'

    def close(self, reason: str = CLOSE_REASON_GAP_TIMEOUT) -> None:
        """Close the session at its last contact time."""
        self.is_active = False
        self.end_utc = self.last_seen_utc
        self.close_reason = reason
