# tests/test_pipeline.py

import threading

import pytest
from sqlalchemy import func, select

from flighttracker.exceptions import AuthenticationError
from flighttracker.ingestion.opensky_client import BoundingBox, FeedResult, FeedStatus
from flighttracker.ingestion.pipeline import OUTSIDE_REGION, IngestionPipeline
from flighttracker.ingestion.reconciler import SessionReconciler
from flighttracker.ingestion.retention import RetentionCleaner
from flighttracker.ingestion.sanity import ALTITUDE_OUTLIER, POSITION_OUT_OF_RANGE
from flighttracker.ingestion.territory import TerritoryClassifier
from flighttracker.models import AircraftSnapshot, FlightSession

from conftest import T0, make_report, utc

BBOX = BoundingBox(lat_min=45.0, lat_max=65.0, lon_min=5.0, lon_max=25.0)


class FakeClient:
    """Returns queued FeedResults, or raises queued exceptions."""

    states_url = 'https://opensky.example.test/api/states/all'

    def __init__(self, *results, on_fetch=None):
        self.results = list(results)
        self.calls = 0
        self.on_fetch = on_fetch

    def fetch_states(self, bbox, cancel=None):
        self.calls += 1
        if self.on_fetch:
            self.on_fetch()
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def ok(*reports):
    return FeedResult(status=FeedStatus.OK, reports=list(reports), api_time=T0, received=len(reports), http_status=200)


def make_pipeline(session_factory, square_boundary, *results, on_fetch=None):
    return IngestionPipeline(
        client=FakeClient(*results, on_fetch=on_fetch),
        classifier=TerritoryClassifier.from_file(square_boundary),
        reconciler=SessionReconciler(session_gap_seconds=1500),
        cleaner=RetentionCleaner(14, 180, 6, session_factory=session_factory),
        bbox=BBOX,
        session_factory=session_factory,
    )


def count(session_factory, model):
    with session_factory() as db:
        return db.scalar(select(func.count()).select_from(model))


def test_tick_stores_snapshots_and_opens_sessions(session_factory, square_boundary):
    pipeline = make_pipeline(
        session_factory, square_boundary,
        ok(make_report(icao24='aaaaaa', lat=55.0, lon=15.0), make_report(icao24='bbbbbb', lat=62.0, lon=15.0)),
    )

    result = pipeline.run_once(now=utc(T0))

    assert result.accepted == 2
    assert result.reconcile.sessions_opened == 2
    assert result.cleanup is not None
    assert count(session_factory, AircraftSnapshot) == 2

    with session_factory() as db:
        flags = dict(db.execute(select(AircraftSnapshot.icao24, AircraftSnapshot.in_territory)).all())
    # Square covers lat 50..60
    assert flags == {'aaaaaa': True, 'bbbbbb': False}


def test_impossible_position_is_discarded_without_side_effects(session_factory, square_boundary):
    pipeline = make_pipeline(session_factory, square_boundary, ok(make_report(lat=200.0)))

    result = pipeline.run_once(now=utc(T0))

    assert result.accepted == 0
    assert result.discarded == {POSITION_OUT_OF_RANGE: 1}
    assert count(session_factory, AircraftSnapshot) == 0
    assert count(session_factory, FlightSession) == 0


def test_reports_outside_region_are_dropped(session_factory, square_boundary):
    pipeline = make_pipeline(
        session_factory, square_boundary,
        ok(make_report(icao24='aaaaaa', lat=40.0), make_report(icao24='bbbbbb', lat=55.0)),
    )

    result = pipeline.run_once(now=utc(T0))

    assert result.accepted == 1
    assert result.discarded[OUTSIDE_REGION] == 1


def test_outlier_altitude_is_stored_as_null(session_factory, square_boundary):
    pipeline = make_pipeline(session_factory, square_boundary, ok(make_report(altitude=45000.0)))

    pipeline.run_once(now=utc(T0))

    with session_factory() as db:
        snapshot = db.scalars(select(AircraftSnapshot)).one()
        session = db.scalars(select(FlightSession)).one()
    assert snapshot.altitude is None
    assert snapshot.is_valid is True
    assert snapshot.invalid_reason == ALTITUDE_OUTLIER
    assert session.airborne_snapshot_count == 0


def test_decode_failures_are_counted(session_factory, square_boundary):
    feed = ok(make_report())
    feed.received = 4
    pipeline = make_pipeline(session_factory, square_boundary, feed)

    result = pipeline.run_once(now=utc(T0))

    assert result.discarded['decode_error'] == 3
    assert pipeline.stats['reports_received'] == 4


@pytest.mark.parametrize('failure', [
    FeedResult(status=FeedStatus.HTTP_ERROR, http_status=503, body='unavailable'),
    FeedResult(status=FeedStatus.NETWORK_ERROR, error='connection reset'),
    FeedResult(status=FeedStatus.NO_DATA, http_status=200),
])
def test_feed_failure_degrades_to_stale_closing(session_factory, square_boundary, failure):
    pipeline = make_pipeline(session_factory, square_boundary, ok(make_report(ts=T0)), failure)
    pipeline.run_once(now=utc(T0))

    result = pipeline.run_once(now=utc(T0 + 3600))

    assert result.feed.status == failure.status
    assert result.accepted == 0
    assert result.reconcile.sessions_closed_stale == 1
    with session_factory() as db:
        session = db.scalars(select(FlightSession)).one()
    assert session.is_active is False
    assert pipeline.stats['error_count'] == 0


def test_authentication_failure_aborts_tick(session_factory, square_boundary):
    pipeline = make_pipeline(session_factory, square_boundary, AuthenticationError('bad credentials'))

    with pytest.raises(AuthenticationError):
        pipeline.run_once(now=utc(T0))

    assert pipeline.stats['error_count'] == 1
    assert pipeline.cleaner.last_run is None
    assert count(session_factory, AircraftSnapshot) == 0


def test_cancel_before_fetch_skips_everything(session_factory, square_boundary):
    pipeline = make_pipeline(session_factory, square_boundary, ok(make_report()))
    cancel = threading.Event()
    cancel.set()

    result = pipeline.run_once(cancel=cancel, now=utc(T0))

    assert result.cancelled is True
    assert pipeline.client.calls == 0
    assert pipeline.stats['cancelled_count'] == 1


def test_cancel_during_fetch_commits_nothing(session_factory, square_boundary):
    cancel = threading.Event()
    pipeline = make_pipeline(session_factory, square_boundary, ok(make_report()), on_fetch=cancel.set)

    result = pipeline.run_once(cancel=cancel, now=utc(T0))

    assert result.cancelled is True
    assert count(session_factory, AircraftSnapshot) == 0
    assert count(session_factory, FlightSession) == 0
    assert pipeline.cleaner.last_run is None


def test_cleanup_is_gated_between_ticks(session_factory, square_boundary):
    pipeline = make_pipeline(session_factory, square_boundary, ok(), ok(), ok())

    assert pipeline.run_once(now=utc(T0)).cleanup is not None
    assert pipeline.run_once(now=utc(T0 + 120)).cleanup is None
    assert pipeline.run_once(now=utc(T0 + 6 * 3600)).cleanup is not None


def test_stats_accumulate(session_factory, square_boundary):
    pipeline = make_pipeline(
        session_factory, square_boundary,
        ok(make_report(ts=T0), make_report(icao24='bbbbbb', lat=99.0)),
        ok(make_report(ts=T0 + 120)),
    )
    pipeline.run_once(now=utc(T0))
    pipeline.run_once(now=utc(T0 + 120))

    stats = pipeline.stats
    assert stats['tick_count'] == 2
    assert stats['reports_accepted'] == 2
    assert stats['snapshots_saved'] == 2
    assert stats['sessions_opened'] == 1
    assert stats['discarded'] == {POSITION_OUT_OF_RANGE: 1}
    assert stats['last_success_time'] == utc(T0 + 120).isoformat()
    assert stats['last_cleanup'] is not None
    assert stats['last_cleanup_run'] == utc(T0).isoformat()
