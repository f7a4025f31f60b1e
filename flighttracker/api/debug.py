"""
Debug API endpoints.

Provides endpoints for:
- GET /api/debug/ingestion - Store totals and ingestion pipeline counters
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, current_app
from sqlalchemy import func, select

from flighttracker.models import AircraftSnapshot, FlightSession, SessionLocal

logger = logging.getLogger(__name__)

debug_bp = Blueprint('debug', __name__, url_prefix='/api/debug')


@debug_bp.route('/ingestion', methods=['GET'])
def get_ingestion():
    """
    Get ingestion health at a glance.

    Returns:
    - Timestamp of the newest snapshot
    - Snapshot, session and active session counts
    - Pipeline and scheduler counters (null when ingestion is not running)
    """
    start_time = time.perf_counter()
    session_factory = current_app.config.get('SESSION_FACTORY') or SessionLocal

    with session_factory() as db:
        last_snapshot = db.scalar(select(func.max(AircraftSnapshot.timestamp_utc)))
        snapshot_count = db.scalar(select(func.count()).select_from(AircraftSnapshot))
        session_count = db.scalar(select(func.count()).select_from(FlightSession))
        active_count = db.scalar(
            select(func.count()).select_from(FlightSession).where(FlightSession.is_active.is_(True))
        )

    pipeline = current_app.config.get('INGESTION_PIPELINE')
    scheduler = current_app.config.get('INGESTION_SCHEDULER')

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'last_snapshot_utc': last_snapshot.isoformat() if last_snapshot else None,
        'snapshots': snapshot_count,
        'sessions': session_count,
        'active_sessions': active_count,
        'pipeline': pipeline.stats if pipeline else None,
        'scheduler': scheduler.stats if scheduler else None,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })
