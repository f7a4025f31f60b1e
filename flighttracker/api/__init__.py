"""
API module for FlightTracker.

Provides REST endpoints for:
- Ingestion debug counters and store totals
"""

from flighttracker.api.debug import debug_bp

__all__ = ['debug_bp']
