"""
Data ingestion module for FlightTracker.

Handles polling OpenSky, validating and classifying state vectors,
reconciling them into flight sessions, and retention cleanup.
"""

from flighttracker.ingestion.auth import TokenCache
from flighttracker.ingestion.opensky_client import OpenSkyClient, BoundingBox, Report, FeedResult, FeedStatus
from flighttracker.ingestion.territory import TerritoryClassifier
from flighttracker.ingestion.reconciler import SessionReconciler
from flighttracker.ingestion.retention import RetentionCleaner
from flighttracker.ingestion.pipeline import IngestionPipeline
from flighttracker.ingestion.scheduler import IngestionScheduler

__all__ = [
    'TokenCache',
    'OpenSkyClient',
    'BoundingBox',
    'Report',
    'FeedResult',
    'FeedStatus',
    'TerritoryClassifier',
    'SessionReconciler',
    'RetentionCleaner',
    'IngestionPipeline',
    'IngestionScheduler',
]
