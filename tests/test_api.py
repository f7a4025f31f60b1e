# tests/test_api.py

import pytest

from flighttracker.app import create_app
from flighttracker.ingestion.reconciler import SessionReconciler

from conftest import T0, make_report, utc


@pytest.fixture
def client(session_factory):
    app = create_app(start_ingestion=False, session_factory=session_factory)
    app.config['TESTING'] = True
    return app.test_client()


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}


def test_ingestion_debug_on_empty_store(client):
    data = client.get('/api/debug/ingestion').get_json()

    assert data['last_snapshot_utc'] is None
    assert data['snapshots'] == 0
    assert data['sessions'] == 0
    assert data['active_sessions'] == 0
    assert data['pipeline'] is None
    assert data['scheduler'] is None


def test_ingestion_debug_reports_store_totals(client, session_factory):
    reconciler = SessionReconciler(session_gap_seconds=1500)
    with session_factory() as db:
        reconciler.reconcile(db, [
            make_report(icao24='aaaaaa', ts=T0),
            make_report(icao24='aaaaaa', ts=T0 + 10),
            make_report(icao24='bbbbbb', ts=T0 + 5),
        ], utc(T0 + 10))
        db.commit()

    data = client.get('/api/debug/ingestion').get_json()

    assert data['snapshots'] == 3
    assert data['sessions'] == 2
    assert data['active_sessions'] == 2
    assert data['last_snapshot_utc'] == utc(T0 + 10).isoformat()


def test_unknown_route_is_json_404(client):
    response = client.get('/api/nope')

    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}
