"""
AircraftSnapshot model - time-series record of every accepted report.

Append-only: a snapshot is written once by the tick that received it and
never updated. It keeps a weak link to the session that owned it at write
time; deleting the session clears the link (ON DELETE SET NULL), never the
reverse. Retention cleanup removes snapshots purely by age.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Float, Integer, DateTime, Boolean, Index, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flighttracker.models.base import Base

if TYPE_CHECKING:
    from flighttracker.ingestion.opensky_client import Report
    from flighttracker.models.flight_session import FlightSession


class AircraftSnapshot(Base):
    """
    One persisted position report.

    Mirrors the decoded report, including the sanity verdict and the
    territory classification computed at ingestion time.
    """

    __tablename__ = 'aircraft_snapshots'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    icao24: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        comment='ICAO24 hex address'
    )

    callsign: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='Callsign at time of observation'
    )

    origin_country: Mapped[str] = mapped_column(
        String(50),
        default='',
        comment='Country of aircraft registration'
    )

    # Position (WGS84)
    latitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Latitude in decimal degrees'
    )

    longitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Longitude in decimal degrees'
    )

    altitude: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Barometric altitude in meters (null if outlier)'
    )

    velocity: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Ground speed in m/s (null if outlier)'
    )

    true_track: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='True track in degrees [0, 360)'
    )

    timestamp_utc: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment='Time of the report (feed last_contact)'
    )

    # Tri-state: None when the feed did not say
    on_ground: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        nullable=True,
        comment='Aircraft on ground'
    )

    in_territory: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment='Position inside the territory boundary'
    )

    # Data quality
    is_valid: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment='Passed the sanity filter'
    )

    invalid_reason: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment='Sanity filter reason code'
    )

    flight_session_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey('flight_sessions.id', ondelete='SET NULL'),
        nullable=True,
        comment='Owning session at write time'
    )

    flight_session: Mapped[Optional['FlightSession']] = relationship(
        back_populates='snapshots',
    )

    __table_args__ = (
        Index('ix_aircraft_snapshots_session', 'flight_session_id'),
        Index('ix_aircraft_snapshots_icao_time', 'icao24', 'timestamp_utc'),
        # Cleanup query: find old records to delete
        Index('ix_aircraft_snapshots_time', 'timestamp_utc'),
        Index('ix_aircraft_snapshots_session_time', 'flight_session_id', 'timestamp_utc'),
    )

    def __repr__(self) -> str:
        return f'<AircraftSnapshot {self.icao24} @ {self.timestamp_utc:%Y-%m-%dT%H:%M:%S}>'

    @classmethod
    def from_report(cls, report: 'Report') -> 'AircraftSnapshot':
        return cls(
            icao24=report.icao24,
            callsign=report.callsign,
            origin_country=report.origin_country,
            latitude=report.latitude,
            longitude=report.longitude,
            altitude=report.altitude,
            velocity=report.velocity,
            true_track=report.true_track,
            timestamp_utc=report.timestamp_utc,
            on_ground=report.on_ground,
            in_territory=report.in_territory,
            is_valid=report.is_valid,
            invalid_reason=report.invalid_reason,
        )
