# tests/test_sanity.py

import math

import pytest

from flighttracker.ingestion.sanity import (
    ALTITUDE_OUTLIER,
    MISSING_POSITION,
    NAN_OR_INF_POSITION,
    POSITION_OUT_OF_RANGE,
    VELOCITY_OUTLIER,
    validate_and_filter,
)

MAX_ALT = 20000
MAX_VEL = 400.0


def check(lat, lon, alt=10000.0, vel=200.0):
    return validate_and_filter(lat, lon, alt, vel, MAX_ALT, MAX_VEL)


@pytest.mark.parametrize('lat, lon', [(None, 15.0), (55.0, None), (None, None)])
def test_missing_position_is_invalid(lat, lon):
    result = check(lat, lon)

    assert result.is_valid is False
    assert result.reason == MISSING_POSITION


@pytest.mark.parametrize('lat, lon', [
    (math.nan, 15.0),
    (55.0, math.inf),
    (-math.inf, 15.0),
])
def test_non_finite_position_is_invalid(lat, lon):
    result = check(lat, lon)

    assert result.is_valid is False
    assert result.reason == NAN_OR_INF_POSITION


@pytest.mark.parametrize('lat, lon', [
    (200.0, 15.0),
    (-90.01, 15.0),
    (55.0, 180.5),
    (55.0, -181.0),
])
def test_out_of_range_position_is_invalid(lat, lon):
    result = check(lat, lon)

    assert result.is_valid is False
    assert result.reason == POSITION_OUT_OF_RANGE


def test_range_edges_are_valid():
    assert check(90.0, 180.0).is_valid
    assert check(-90.0, -180.0).is_valid


@pytest.mark.parametrize('alt', [-500.0, -10.0, 0.0, 1.5, 11000.0, 19999.9, 20000.0])
def test_plausible_altitude_is_preserved(alt):
    result = check(55.0, 15.0, alt=alt)

    assert result.is_valid is True
    assert result.altitude == alt
    assert result.reason is None


@pytest.mark.parametrize('alt', [-500.1, 20000.1, math.nan, math.inf])
def test_altitude_outlier_is_nulled_but_report_stays_valid(alt):
    result = check(55.0, 15.0, alt=alt)

    assert result.is_valid is True
    assert result.altitude is None
    assert result.velocity == 200.0
    assert result.reason == ALTITUDE_OUTLIER


@pytest.mark.parametrize('vel', [-0.1, 400.1, math.nan, -math.inf])
def test_velocity_outlier_is_nulled(vel):
    result = check(55.0, 15.0, vel=vel)

    assert result.is_valid is True
    assert result.velocity is None
    assert result.altitude == 10000.0
    assert result.reason == VELOCITY_OUTLIER


def test_altitude_reason_wins_over_velocity_reason():
    result = check(55.0, 15.0, alt=99999.0, vel=9999.0)

    assert result.altitude is None
    assert result.velocity is None
    assert result.reason == ALTITUDE_OUTLIER


def test_missing_altitude_and_velocity_are_not_outliers():
    result = check(55.0, 15.0, alt=None, vel=None)

    assert result.is_valid is True
    assert result.reason is None


def test_invalid_result_leaves_telemetry_untouched():
    result = check(None, 15.0, alt=99999.0, vel=-5.0)

    assert result.altitude == 99999.0
    assert result.velocity == -5.0


def test_filter_is_deterministic():
    first = check(55.0, 15.0, alt=30000.0, vel=100.0)
    second = check(55.0, 15.0, alt=30000.0, vel=100.0)

    assert first == second
