"""
OpenSky Network API client.

Handles communication with the OpenSky REST API, including:
- Bearer authentication through the shared TokenCache
- Bounding box queries for geographic filtering
- Decoding state vector arrays into immutable Report records
- Reporting upstream failures as values, not exceptions

OpenSky state vector format (array indices used here):
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max, space padded)
2: origin_country  - Country of registration
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean (may be null)
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
"""

import logging
import math
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

import requests

from flighttracker.config import config, RegionConfig
from flighttracker.exceptions import TickCancelled
from flighttracker.ingestion.auth import TokenCache

logger = logging.getLogger(__name__)

_ICAO24_RE = re.compile(r'^[0-9a-f]{6}$')

# Shortest array that still carries every index we read
_MIN_STATE_LENGTH = 11

# 3000-01-01T00:00:00Z; anything later is a corrupt value
_MAX_TIMESTAMP = 32503680000

# Upstream error bodies are logged, not stored; keep log lines bounded
_MAX_LOGGED_BODY = 2000


@dataclass(frozen=True)
class BoundingBox:
    """
    Geographic bounding box for API queries.

    OpenSky expects: lamin, lomin, lamax, lomax
    (latitude min, longitude min, latitude max, longitude max)
    """
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_region(cls, region: RegionConfig) -> 'BoundingBox':
        return cls(
            lat_min=region.lat_min,
            lat_max=region.lat_max,
            lon_min=region.lon_min,
            lon_max=region.lon_max,
        )

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            'lamin': self.lat_min,
            'lamax': self.lat_max,
            'lomin': self.lon_min,
            'lomax': self.lon_max,
        }

    def contains(self, latitude: float, longitude: float) -> bool:
        """Inclusive on all edges."""
        return (
            self.lat_min <= latitude <= self.lat_max
            and self.lon_min <= longitude <= self.lon_max
        )


@dataclass(frozen=True)
class Report:
    """
    One decoded state vector.

    Immutable: pipeline stages (sanity filter, territory classification)
    derive new instances with dataclasses.replace().
    """
    icao24: str
    callsign: Optional[str]
    origin_country: str
    timestamp: int
    latitude: Optional[float]
    longitude: Optional[float]
    altitude: Optional[float] = None
    velocity: Optional[float] = None
    true_track: Optional[float] = None
    on_ground: Optional[bool] = None
    is_valid: bool = True
    invalid_reason: Optional[str] = None
    in_territory: bool = False

    @property
    def timestamp_utc(self) -> datetime:
        """Report time as naive UTC, matching the stored columns."""
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc).replace(tzinfo=None)

    @property
    def is_airborne(self) -> bool:
        """Explicitly not on ground with a positive altitude."""
        return self.on_ground is False and self.altitude is not None and self.altitude > 0


def _as_float(value: Any) -> Optional[float]:
    """
    JSON number or numeric string to float; anything else (including bools) to None.

    Integer literals too large for a float also become None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def normalize_track(track: Optional[float]) -> Optional[float]:
    """
    Normalize a track angle into [0, 360).

    Non-finite values become None. Python's modulo already returns a
    non-negative result for a positive divisor, but tiny negative inputs
    round up to exactly 360.0, which is folded back to 0.
    """
    if track is None or not math.isfinite(track):
        return None
    value = track % 360.0
    if value < 0:
        value += 360.0
    if value >= 360.0:
        value = 0.0
    return value


def decode_state(arr: Any) -> Optional[Report]:
    """
    Parse one OpenSky state vector array into a Report.

    Returns None if the element is malformed, has no usable icao24, lacks
    latitude/longitude, or has a missing/non-positive timestamp. A single
    bad element never affects the rest of the batch.
    """
    if not isinstance(arr, list) or len(arr) < _MIN_STATE_LENGTH:
        return None

    icao24 = arr[0]
    if not isinstance(icao24, str):
        return None
    icao24 = icao24.strip().lower()
    if not _ICAO24_RE.match(icao24):
        return None

    latitude = _as_float(arr[6])
    longitude = _as_float(arr[5])
    if latitude is None or longitude is None:
        return None

    timestamp = arr[4]
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    # Compared without float conversion: JSON ints are unbounded
    if isinstance(timestamp, float) and not math.isfinite(timestamp):
        return None
    if timestamp <= 0 or timestamp >= _MAX_TIMESTAMP:
        return None

    # Normalize callsign (strip whitespace, handle None)
    callsign = arr[1]
    if isinstance(callsign, str):
        callsign = callsign.strip() or None
    else:
        callsign = None

    origin_country = arr[2] if isinstance(arr[2], str) else ''

    on_ground = arr[8] if isinstance(arr[8], bool) else None

    return Report(
        icao24=icao24,
        callsign=callsign,
        origin_country=origin_country,
        timestamp=int(timestamp),
        latitude=latitude,
        longitude=longitude,
        altitude=_as_float(arr[7]),
        velocity=_as_float(arr[9]),
        true_track=normalize_track(_as_float(arr[10])),
        on_ground=on_ground,
    )


class FeedStatus(str, Enum):
    """Outcome of one states request."""
    OK = 'ok'
    NO_DATA = 'no_data'
    HTTP_ERROR = 'http_error'
    NETWORK_ERROR = 'network_error'


@dataclass
class FeedResult:
    """
    Result of one states request.

    Only OK carries reports. HTTP_ERROR keeps the status and body for
    logging; NO_DATA is the normal "nothing to report" answer.
    """
    status: FeedStatus
    reports: List[Report] = field(default_factory=list)
    api_time: Optional[int] = None
    received: int = 0
    http_status: Optional[int] = None
    body: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == FeedStatus.OK

    @property
    def decode_failures(self) -> int:
        return self.received - len(self.reports)


class OpenSkyClient:
    """
    Client for the OpenSky Network states endpoint.

    One GET per call, authenticated with the cached bearer token. Credential
    failures raise AuthenticationError (from the TokenCache); everything
    that goes wrong with the states request itself is returned as a
    FeedResult.
    """

    def __init__(
        self,
        token_cache: TokenCache,
        states_url: str = 'https://opensky-network.org/api/states/all',
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.token_cache = token_cache
        self.states_url = states_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, session: Optional[requests.Session] = None) -> 'OpenSkyClient':
        """Create client from application configuration, sharing one HTTP session."""
        session = session or requests.Session()
        return cls(
            token_cache=TokenCache.from_config(session=session),
            states_url=config.opensky.states_url,
            session=session,
            timeout=config.opensky.request_timeout_seconds,
        )

    def fetch_states(
        self,
        bbox: BoundingBox,
        cancel: Optional[threading.Event] = None,
    ) -> FeedResult:
        """
        Fetch and decode the current state vectors inside bbox.

        Raises:
            AuthenticationError if no token can be obtained (no request is made)
            TickCancelled if cancel is set before the request is sent
        """
        token = self.token_cache.get_token(cancel)

        if cancel is not None and cancel.is_set():
            raise TickCancelled('Cancelled before states request')

        params = bbox.to_params()
        headers = {'Authorization': f'Bearer {token}'}

        logger.debug(f'Fetching states: {self.states_url} params={params}')

        try:
            with self.session.get(
                self.states_url,
                params=params,
                headers=headers,
                timeout=self.timeout,
                stream=True,
            ) as response:
                status_code = response.status_code
                if not 200 <= status_code < 300:
                    body = response.text
                    if status_code == 401:
                        # Token revoked or clock skew; force a fresh exchange next tick
                        self.token_cache.invalidate()
                    return FeedResult(
                        status=FeedStatus.HTTP_ERROR,
                        http_status=status_code,
                        body=body[:_MAX_LOGGED_BODY],
                    )

                try:
                    data = response.json()
                except ValueError as e:
                    logger.warning(f'OpenSky returned unparsable JSON: {e}')
                    return FeedResult(status=FeedStatus.NO_DATA, http_status=status_code)

        except requests.exceptions.RequestException as e:
            return FeedResult(status=FeedStatus.NETWORK_ERROR, error=str(e))

        if not isinstance(data, dict):
            return FeedResult(status=FeedStatus.NO_DATA, http_status=status_code)

        api_time = data.get('time')
        if isinstance(api_time, bool) or not isinstance(api_time, int):
            api_time = None

        states_raw = data.get('states')
        if not isinstance(states_raw, list):
            return FeedResult(status=FeedStatus.NO_DATA, api_time=api_time, http_status=status_code)

        reports = []
        for arr in states_raw:
            report = decode_state(arr)
            if report is not None:
                reports.append(report)

        logger.debug(f'Decoded {len(reports)}/{len(states_raw)} state vectors')

        return FeedResult(
            status=FeedStatus.OK,
            reports=reports,
            api_time=api_time,
            received=len(states_raw),
            http_status=status_code,
        )
