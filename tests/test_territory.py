# tests/test_territory.py

import json

import numpy as np
import pytest

from flighttracker.config import DEFAULT_BOUNDARY_PATH
from flighttracker.exceptions import BoundaryError
from flighttracker.ingestion.territory import TerritoryClassifier


def test_point_inside_and_outside(square_boundary):
    classifier = TerritoryClassifier.from_file(square_boundary)

    assert classifier.is_inside(55.0, 15.0) is True
    assert classifier.is_inside(45.0, 15.0) is False
    assert classifier.is_inside(55.0, 25.0) is False


def test_boundary_counts_as_inside(square_boundary):
    classifier = TerritoryClassifier.from_file(square_boundary)

    # Edges and a vertex
    assert classifier.is_inside(50.0, 15.0) is True
    assert classifier.is_inside(55.0, 20.0) is True
    assert classifier.is_inside(60.0, 10.0) is True


def test_classification_is_deterministic(square_boundary):
    classifier = TerritoryClassifier.from_file(square_boundary)

    points = [(55.0, 15.0), (50.0, 12.0), (61.0, 15.0), (59.999, 19.999)]
    first = [classifier.is_inside(lat, lon) for lat, lon in points]
    second = [classifier.is_inside(lat, lon) for lat, lon in points]

    assert first == second


def test_vectorized_classify_matches_scalar(square_boundary):
    classifier = TerritoryClassifier.from_file(square_boundary)

    lats = [55.0, 50.0, 45.0, 60.0, 59.0]
    lons = [15.0, 12.0, 15.0, 10.0, 21.0]

    flags = classifier.classify(lats, lons)

    assert flags.dtype == bool
    assert list(flags) == [classifier.is_inside(la, lo) for la, lo in zip(lats, lons)]


def test_classify_empty_batch(square_boundary):
    classifier = TerritoryClassifier.from_file(square_boundary)

    assert classifier.classify([], []).shape == (0,)


def test_multiple_polygons_are_merged(tmp_path):
    path = tmp_path / 'two.geojson'
    path.write_text(json.dumps({
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'geometry': {'type': 'Polygon', 'coordinates': [
                [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}},
            {'type': 'Feature', 'geometry': {'type': 'MultiPolygon', 'coordinates': [
                [[[5, 5], [6, 5], [6, 6], [5, 6], [5, 5]]]]}},
        ],
    }))

    classifier = TerritoryClassifier.from_file(path)

    assert classifier.is_inside(0.5, 0.5)
    assert classifier.is_inside(5.5, 5.5)
    assert not classifier.is_inside(3.0, 3.0)
    assert classifier.name == 'two'


def test_missing_file_fails(tmp_path):
    with pytest.raises(BoundaryError):
        TerritoryClassifier.from_file(tmp_path / 'nope.geojson')


def test_file_without_polygons_fails(tmp_path):
    path = tmp_path / 'empty.geojson'
    path.write_text(json.dumps({'type': 'FeatureCollection', 'features': []}))

    with pytest.raises(BoundaryError):
        TerritoryClassifier.from_file(path)


def test_file_with_only_points_fails(tmp_path):
    path = tmp_path / 'points.geojson'
    path.write_text(json.dumps({'type': 'Point', 'coordinates': [15.0, 55.0]}))

    with pytest.raises(BoundaryError):
        TerritoryClassifier.from_file(path)


def test_unreadable_json_fails(tmp_path):
    path = tmp_path / 'broken.geojson'
    path.write_text('{"type": "Feature"')

    with pytest.raises(BoundaryError):
        TerritoryClassifier.from_file(path)


def test_bundled_sweden_boundary():
    classifier = TerritoryClassifier.from_file(DEFAULT_BOUNDARY_PATH)

    assert classifier.is_inside(59.65, 17.93)      # Stockholm Arlanda
    assert classifier.is_inside(62.0, 15.0)        # Jämtland
    assert classifier.is_inside(57.4, 18.5)        # Gotland
    assert not classifier.is_inside(60.17, 24.94)  # Helsinki
    assert not classifier.is_inside(59.91, 10.75)  # Oslo

    flags = classifier.classify(np.array([59.65, 60.17]), np.array([17.93, 24.94]))
    assert list(flags) == [True, False]
