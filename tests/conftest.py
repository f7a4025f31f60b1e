import json
from datetime import datetime, timezone

import pytest

from flighttracker.ingestion.opensky_client import Report
from flighttracker.models import init_db, make_engine, make_session_factory

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000

SQUARE = [[10.0, 50.0], [20.0, 50.0], [20.0, 60.0], [10.0, 60.0], [10.0, 50.0]]


def utc(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).replace(tzinfo=None)


def make_report(
    icao24='4ca7b3',
    ts=T0,
    lat=55.0,
    lon=15.0,
    altitude=10000.0,
    velocity=230.0,
    true_track=90.0,
    on_ground=False,
    callsign='SAS123',
    in_territory=True,
    **kwargs,
) -> Report:
    return Report(
        icao24=icao24,
        callsign=callsign,
        origin_country=kwargs.pop('origin_country', 'Sweden'),
        timestamp=ts,
        latitude=lat,
        longitude=lon,
        altitude=altitude,
        velocity=velocity,
        true_track=true_track,
        on_ground=on_ground,
        in_territory=in_territory,
        **kwargs,
    )


def state_vector(
    icao24='4ca7b3',
    callsign='SAS123  ',
    country='Sweden',
    ts=T0,
    lon=15.0,
    lat=55.0,
    altitude=10000.0,
    on_ground=False,
    velocity=230.0,
    true_track=90.0,
):
    """Raw OpenSky array (17 entries) as it appears in the states response."""
    return [
        icao24, callsign, country, ts, ts, lon, lat, altitude, on_ground,
        velocity, true_track, 0.0, None, altitude, '1000', False, 0,
    ]


class FakeResponse:
    """Stand-in for requests.Response, usable as a context manager."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON object could be decoded')
        return self._payload

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def session_factory():
    engine = make_engine('sqlite://')
    init_db(engine)
    factory = make_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def square_boundary(tmp_path):
    """GeoJSON file with one square: lat 50..60, lon 10..20."""
    path = tmp_path / 'square.geojson'
    path.write_text(json.dumps({
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {}, 'geometry': {'type': 'Polygon', 'coordinates': [SQUARE]}},
        ],
    }))
    return path
