"""
Database models for FlightTracker.

Two tables:
1. flight_sessions - one row per continuous period of contact, with
   running aggregates maintained by the reconciler
2. aircraft_snapshots - append-only time series of accepted reports,
   weakly linked to their session
"""

from flighttracker.models.base import (
    Base,
    engine,
    SessionLocal,
    init_db,
    make_engine,
    make_session_factory,
    utcnow,
)
from flighttracker.models.flight_session import FlightSession, CLOSE_REASON_GAP_TIMEOUT
from flighttracker.models.aircraft_snapshot import AircraftSnapshot

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'make_engine',
    'make_session_factory',
    'utcnow',
    'FlightSession',
    'CLOSE_REASON_GAP_TIMEOUT',
    'AircraftSnapshot',
]
