"""
Territory classification against a country boundary.

The boundary is read once at startup from a GeoJSON file. All polygons in
it are merged into a single region and prepared, so each membership test
is an indexed "covers" check: a point exactly on the border counts as
inside.

Usage:
    classifier = TerritoryClassifier.from_file('flighttracker/data/sweden.geojson')
    classifier.is_inside(59.65, 17.93)   # Stockholm Arlanda -> True
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence, Union

import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from flighttracker.exceptions import BoundaryError

logger = logging.getLogger(__name__)

_POLYGON_TYPES = ('Polygon', 'MultiPolygon')


class TerritoryPredicate(Protocol):
    """What the pipeline needs from a classifier."""

    def is_inside(self, latitude: float, longitude: float) -> bool: ...

    def classify(self, latitudes: Sequence[float], longitudes: Sequence[float]) -> np.ndarray: ...


def _iter_geometries(geojson: dict) -> Iterable[dict]:
    """Yield raw geometry mappings from a FeatureCollection, Feature or bare geometry."""
    kind = geojson.get('type')
    if kind == 'FeatureCollection':
        for feature in geojson.get('features') or []:
            if isinstance(feature, dict):
                yield from _iter_geometries(feature)
    elif kind == 'Feature':
        geometry = geojson.get('geometry')
        if isinstance(geometry, dict):
            yield from _iter_geometries(geometry)
    elif kind == 'GeometryCollection':
        for geometry in geojson.get('geometries') or []:
            if isinstance(geometry, dict):
                yield from _iter_geometries(geometry)
    elif kind in _POLYGON_TYPES:
        yield geojson


class TerritoryClassifier:
    """
    Point-in-territory predicate backed by a prepared Shapely geometry.

    Coordinates follow GeoJSON order internally (x=longitude, y=latitude);
    the public methods take latitude first like the rest of the codebase.
    """

    def __init__(self, geometry: BaseGeometry, name: str = 'territory'):
        if geometry is None or geometry.is_empty:
            raise BoundaryError(f'Boundary for {name} is empty')

        self.name = name
        self._geometry = geometry
        # Builds the internal spatial index once; later predicates reuse it
        shapely.prepare(self._geometry)

        minx, miny, maxx, maxy = geometry.bounds
        logger.info(
            f'Territory {name} loaded: {geometry.geom_type}, '
            f'bounds lat [{miny:.4f}, {maxy:.4f}] lon [{minx:.4f}, {maxx:.4f}]'
        )

    @classmethod
    def from_polygons(cls, polygons: List[BaseGeometry], name: str = 'territory') -> 'TerritoryClassifier':
        if not polygons:
            raise BoundaryError(f'Boundary for {name} contains no polygons')
        merged = polygons[0] if len(polygons) == 1 else unary_union(polygons)
        return cls(merged, name=name)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'TerritoryClassifier':
        """
        Build a classifier from a GeoJSON boundary file.

        Raises BoundaryError if the file is missing, unreadable or has no
        Polygon/MultiPolygon geometry. This is a startup precondition.
        """
        path = Path(path)
        if not path.is_file():
            raise BoundaryError(f'Territory boundary file not found: {path}')

        try:
            with open(path, 'r', encoding='utf-8') as f:
                geojson = json.load(f)
        except (OSError, ValueError) as e:
            raise BoundaryError(f'Cannot read territory boundary {path}: {e}') from e

        if not isinstance(geojson, dict):
            raise BoundaryError(f'Territory boundary {path} is not a GeoJSON object')

        try:
            polygons = [shape(g) for g in _iter_geometries(geojson)]
        except (ValueError, TypeError, AttributeError, GEOSException) as e:
            raise BoundaryError(f'Invalid geometry in {path}: {e}') from e

        polygons = [p for p in polygons if not p.is_empty]
        return cls.from_polygons(polygons, name=path.stem)

    def is_inside(self, latitude: float, longitude: float) -> bool:
        """True if the point lies inside or on the boundary."""
        return bool(self._geometry.covers(Point(longitude, latitude)))

    def classify(self, latitudes: Sequence[float], longitudes: Sequence[float]) -> np.ndarray:
        """
        Vectorized is_inside for a whole tick.

        For a point against an areal geometry, intersects is equivalent to
        covers, and intersects_xy avoids building Point objects.
        """
        lats = np.asarray(latitudes, dtype=float)
        lons = np.asarray(longitudes, dtype=float)
        if lats.shape != lons.shape:
            raise ValueError('latitudes and longitudes must have the same shape')
        if lats.size == 0:
            return np.zeros(0, dtype=bool)
        return np.asarray(shapely.intersects_xy(self._geometry, lons, lats), dtype=bool)
