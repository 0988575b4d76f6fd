"""Tier C: point-filtering approximation of a polygon difference.

Last resort when no exact method produced a usable result. Minuend vertices
covered by the subtrahend are dropped and the survivors, optionally augmented
with boundary crossing points, are re-ordered by polar angle into a single
ring. Only faithful for roughly star-shaped survivor sets; every result is
tagged ``approximate``.
"""

import logging

from shapely.errors import GEOSException
from shapely.geometry import MultiPoint, Point, Polygon
from shapely.geometry.base import BaseGeometry

from ..errors import RepairFailure
from ..geometry.polygon_ops import (
    Coords,
    exterior_vertices,
    feature_to_shape,
    is_valid_polygon,
    polar_ring,
    shape_to_geometry,
)
from ..geometry.repair import repair_feature
from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings

logger = logging.getLogger(__name__)


def _best_effort_shape(feature: PolygonFeature, settings: EngineSettings) -> BaseGeometry:
    try:
        return feature_to_shape(repair_feature(feature, settings))
    except RepairFailure:
        return feature_to_shape(feature)


def boundary_crossings(a: BaseGeometry, b: BaseGeometry) -> Coords:
    """Points where the boundaries of ``a`` and ``b`` cross.

    Shared boundary segments are not crossings and contribute no points.
    """
    return _point_coords(a.boundary.intersection(b.boundary))


def _point_coords(geom: BaseGeometry) -> Coords:
    if geom.is_empty:
        return []
    if isinstance(geom, Point):
        return [(geom.x, geom.y)]
    points: Coords = []
    for member in getattr(geom, "geoms", []):
        points.extend(_point_coords(member))
    return points


def approximate_difference(
    minuend: PolygonFeature,
    subtrahend: PolygonFeature,
    settings: EngineSettings,
) -> PolygonFeature | None:
    """Approximate ``minuend - subtrahend`` by vertex filtering.

    Args:
        minuend: Feature to subtract from
        subtrahend: Feature to subtract
        settings: Engine settings

    Returns:
        Feature tagged ``approximate`` (``isEmpty`` when fewer than 3 points
        survive, ``convexHullUsed`` when the polar ring was invalid), or None
        when not even the convex hull is a polygon
    """
    minuend_geom = _best_effort_shape(minuend, settings)
    subtrahend_geom = _best_effort_shape(subtrahend, settings)

    # Boundary points count as covered
    survivors = [
        p for p in exterior_vertices(minuend_geom) if not subtrahend_geom.covers(Point(p))
    ]

    if len(set(survivors)) < settings.build.approximate_augment_below:
        try:
            crossings = boundary_crossings(minuend_geom, subtrahend_geom)
        except GEOSException as e:
            logger.debug(f"Boundary crossing search raised: {e}")
            crossings = []
        if crossings:
            logger.debug(f"Adding {len(crossings)} boundary crossings to {len(survivors)} survivors")
        survivors.extend(crossings)

    ring = polar_ring(survivors)
    if not ring:
        logger.debug(f"Only {len(set(survivors))} points survive, result is empty")
        return minuend.as_empty(approximate=True)

    candidate = Polygon(ring)
    if is_valid_polygon(candidate):
        return minuend.with_geometry(shape_to_geometry(candidate), approximate=True)

    hull = MultiPoint(survivors).convex_hull
    if is_valid_polygon(hull):
        logger.debug("Polar ring invalid, using convex hull of survivors")
        return minuend.with_geometry(
            shape_to_geometry(hull),
            approximate=True,
            convexHullUsed=True,
        )

    return None
