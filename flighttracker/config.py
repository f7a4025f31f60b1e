"""
Configuration management for FlightTracker.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase. Values are validated once at startup by
load_config(); components take explicit parameters so tests can build
them without touching the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from flighttracker.exceptions import ConfigError

load_dotenv()

DEFAULT_BOUNDARY_PATH = Path(__file__).resolve().parent / 'data' / 'sweden.geojson'


@dataclass(frozen=True)
class OpenSkyConfig:
    """OpenSky API configuration (OAuth2 client credentials)."""
    client_id: Optional[str] = (os.getenv('OPENSKY_CLIENT_ID') or '').strip() or None
    client_secret: Optional[str] = (os.getenv('OPENSKY_CLIENT_SECRET') or '').strip() or None
    token_url: str = os.getenv(
        'OPENSKY_TOKEN_URL',
        'https://auth.opensky-network.org/auth/realms/opensky-network/protocol/openid-connect/token',
    )
    states_url: str = os.getenv('OPENSKY_STATES_URL', 'https://opensky-network.org/api/states/all')

    # Socket timeout for each HTTP call; a blocking call cannot observe the stop event
    request_timeout_seconds: float = float(os.getenv('OPENSKY_TIMEOUT_SECONDS', '30'))

    @property
    def is_authenticated(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class RegionConfig:
    """Bounding box sent to the feed and used to pre-filter reports (Sweden by default)."""
    lat_min: float = float(os.getenv('REGION_LAT_MIN', '54.5'))
    lat_max: float = float(os.getenv('REGION_LAT_MAX', '70.5'))
    lon_min: float = float(os.getenv('REGION_LON_MIN', '10.0'))
    lon_max: float = float(os.getenv('REGION_LON_MAX', '26.5'))


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///flighttracker.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class IngestionConfig:
    """Data ingestion settings."""
    interval_seconds: int = int(os.getenv('INTERVAL_SECONDS', '120'))

    # Silence after which a flight session is considered ended
    session_gap_seconds: int = int(os.getenv('SESSION_GAP_SECONDS', '1500'))

    # Sanity filter thresholds
    max_altitude_m: int = int(os.getenv('MAX_ALTITUDE_M', '20000'))
    max_velocity_mps: float = float(os.getenv('MAX_VELOCITY_MPS', '400'))

    territory_boundary_path: str = os.getenv('TERRITORY_BOUNDARY_PATH', str(DEFAULT_BOUNDARY_PATH))


@dataclass(frozen=True)
class RetentionConfig:
    """Data retention policy."""
    snapshot_retention_days: int = int(os.getenv('SNAPSHOT_RETENTION_DAYS', '14'))
    session_retention_days: int = int(os.getenv('SESSION_RETENTION_DAYS', '180'))
    cleanup_every_hours: int = int(os.getenv('CLEANUP_EVERY_HOURS', '6'))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    opensky: OpenSkyConfig
    region: RegionConfig
    database: DatabaseConfig
    ingestion: IngestionConfig
    retention: RetentionConfig

    # Flask settings
    secret_key: str
    debug: bool


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not (low <= value <= high):
        raise ConfigError(f'{name}={value} is outside the allowed range [{low}, {high}]')


def validate_config(cfg: AppConfig) -> AppConfig:
    """
    Validate configuration values.

    Raises ConfigError on the first violation. Session retention must be at
    least snapshot retention so cleanup never deletes a session while
    snapshots referencing it are still kept.
    """
    region = cfg.region
    _check_range('REGION_LAT_MIN', region.lat_min, -90, 90)
    _check_range('REGION_LAT_MAX', region.lat_max, -90, 90)
    _check_range('REGION_LON_MIN', region.lon_min, -180, 180)
    _check_range('REGION_LON_MAX', region.lon_max, -180, 180)
    if region.lat_min >= region.lat_max or region.lon_min >= region.lon_max:
        raise ConfigError('Region bounding box is empty (min must be below max)')

    ingestion = cfg.ingestion
    _check_range('INTERVAL_SECONDS', ingestion.interval_seconds, 10, 3600)
    _check_range('SESSION_GAP_SECONDS', ingestion.session_gap_seconds, 60, 24 * 3600)
    _check_range('MAX_ALTITUDE_M', ingestion.max_altitude_m, 1, 100000)
    _check_range('MAX_VELOCITY_MPS', ingestion.max_velocity_mps, 0.1, 5000)

    retention = cfg.retention
    _check_range('SNAPSHOT_RETENTION_DAYS', retention.snapshot_retention_days, 1, 365)
    _check_range('SESSION_RETENTION_DAYS', retention.session_retention_days, 7, 3650)
    _check_range('CLEANUP_EVERY_HOURS', retention.cleanup_every_hours, 1, 72)
    if retention.session_retention_days < retention.snapshot_retention_days:
        raise ConfigError('SESSION_RETENTION_DAYS must be >= SNAPSHOT_RETENTION_DAYS')

    if cfg.opensky.request_timeout_seconds <= 0:
        raise ConfigError('OPENSKY_TIMEOUT_SECONDS must be positive')

    return cfg


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return validate_config(AppConfig(
        opensky=OpenSkyConfig(),
        region=RegionConfig(),
        database=DatabaseConfig(),
        ingestion=IngestionConfig(),
        retention=RetentionConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    ))


# Singleton instance
config = load_config()
