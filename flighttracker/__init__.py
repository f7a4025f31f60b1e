"""
FlightTracker Ingestion Package.

Reconstructs per-aircraft flight sessions from OpenSky state vectors,
built with SQLAlchemy, requests, Shapely and Flask.

Modules:
    ingestion/    OpenSky feed client, sanity filter, territory classifier,
                  session reconciler, retention cleanup and tick scheduler
    models/       SQLAlchemy ORM models (FlightSession, AircraftSnapshot)
    api/          Debug endpoints exposing ingestion counters
    app.py        Flask application factory
    ingest.py     Command-line ingestor (single tick or continuous)
    config.py     Centralized configuration from environment variables
"""

__version__ = '1.0.0'
