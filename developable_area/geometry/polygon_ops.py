"""Polygon helpers shared by the normalizer, repairer, reducer and difference tiers.

Converts between GeoJSON geometry dicts and Shapely geometries, implements the
validity predicate used by every stage, and provides the polar-angle ring
reconstruction used by the approximate strategies.
"""

from __future__ import annotations

import logging
import math

from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import make_valid

from ..models.feature import EMPTY_GEOMETRY, PolygonFeature

logger = logging.getLogger(__name__)

# Type aliases
Coords = list[tuple[float, float]]
PolygonLike = Polygon | MultiPolygon


def feature_to_shape(feature: PolygonFeature) -> PolygonLike:
    """Build a Shapely geometry from a feature.

    Args:
        feature: Canonical polygon feature

    Returns:
        Polygon or MultiPolygon (empty Polygon for empty features)
    """
    if feature.is_empty:
        return Polygon()
    geom = shape(feature.geometry)
    if not isinstance(geom, (Polygon, MultiPolygon)):
        return Polygon()
    return geom


def shape_to_geometry(geom: BaseGeometry) -> dict:
    """Convert a Shapely geometry to a GeoJSON Polygon/MultiPolygon dict.

    Non-polygonal members of collections are dropped. Coordinates are emitted
    as ``[x, y]`` float lists.

    Args:
        geom: Shapely geometry

    Returns:
        GeoJSON geometry dict (empty Polygon when nothing polygonal remains)
    """
    parts = polygonal_parts(geom)
    if not parts:
        return {"type": EMPTY_GEOMETRY["type"], "coordinates": []}
    if len(parts) == 1:
        return {"type": "Polygon", "coordinates": _polygon_rings(parts[0])}
    return {
        "type": "MultiPolygon",
        "coordinates": [_polygon_rings(p) for p in parts],
    }


def _polygon_rings(polygon: Polygon) -> list[list[list[float]]]:
    rings = [_ring_coords(polygon.exterior.coords)]
    for interior in polygon.interiors:
        rings.append(_ring_coords(interior.coords))
    return rings


def _ring_coords(coords) -> list[list[float]]:
    return [[float(c[0]), float(c[1])] for c in coords]


def polygonal_parts(geom: BaseGeometry | None) -> list[Polygon]:
    """Extract the non-empty Polygons contained in any geometry.

    Args:
        geom: Any Shapely geometry (collections are flattened)

    Returns:
        List of Polygons in encounter order
    """
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom]
    if isinstance(geom, (MultiPolygon, GeometryCollection)):
        parts = []
        for member in geom.geoms:
            parts.extend(polygonal_parts(member))
        return parts
    return []


def combine_parts(parts: list[Polygon]) -> PolygonLike:
    """Recombine surviving polygons into a single geometry.

    One part stays a Polygon, several become a MultiPolygon. Parts that
    touch or overlap are dissolved so the MultiPolygon stays valid.

    Args:
        parts: Polygons to combine

    Returns:
        Polygon, MultiPolygon, or empty Polygon
    """
    parts = [p for p in parts if p is not None and not p.is_empty]
    if not parts:
        return Polygon()
    if len(parts) == 1:
        return parts[0]

    combined = MultiPolygon(parts)
    if combined.is_valid:
        return combined

    dissolved = unary_union(parts)
    if not dissolved.is_valid:
        dissolved = make_valid(dissolved)
    remaining = polygonal_parts(dissolved)
    if len(remaining) == 1:
        return remaining[0]
    return MultiPolygon(remaining) if remaining else Polygon()


def is_valid_polygon(geom: BaseGeometry | None) -> bool:
    """Global validity predicate.

    A geometry is valid when it is a non-empty Polygon or MultiPolygon whose
    rings are simple, closed, at least 4 points long, with holes nested in
    their shells and parts not overlapping.
    """
    if geom is None or geom.is_empty:
        return False
    if not isinstance(geom, (Polygon, MultiPolygon)):
        return False
    for polygon in polygonal_parts(geom):
        if len(polygon.exterior.coords) < 4:
            return False
        if any(len(interior.coords) < 4 for interior in polygon.interiors):
            return False
    try:
        return bool(geom.is_valid)
    except GEOSException as e:
        logger.debug(f"Validity check raised: {e}")
        return False


def count_coords(geom: BaseGeometry | None) -> int:
    """Count coordinates across all rings (closing points included)."""
    total = 0
    for polygon in polygonal_parts(geom):
        total += len(polygon.exterior.coords)
        for interior in polygon.interiors:
            total += len(interior.coords)
    return total


def geometry_area(geom: BaseGeometry | None) -> float:
    """Area in square coordinate units (0 for empty geometries)."""
    if geom is None or geom.is_empty:
        return 0.0
    return geom.area


def bounds_intersect(
    a: tuple[float, float, float, float],
    b: tuple[float, float, float, float],
) -> bool:
    """Check whether two (min_x, min_y, max_x, max_y) boxes overlap or touch."""
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])


def padded_bounds(
    geom: BaseGeometry,
    padding: float,
) -> tuple[float, float, float, float]:
    """Bounding box grown by ``padding`` times its larger dimension on each side.

    Args:
        geom: Geometry to measure
        padding: Fraction of the box size added (0.2 = 20%)

    Returns:
        Tuple of (min_x, min_y, max_x, max_y)
    """
    min_x, min_y, max_x, max_y = geom.bounds
    size = max(max_x - min_x, max_y - min_y)
    pad = size * padding / 2
    return (min_x - pad, min_y - pad, max_x + pad, max_y + pad)


def polar_ring(points: Coords) -> Coords:
    """Order points by polar angle around their centroid and close the ring.

    Only correct for roughly star-shaped point sets; concave sets may yield a
    self-crossing ring, which callers must detect with the validity
    predicate.

    Args:
        points: Unordered (x, y) points

    Returns:
        Closed ring (first point repeated at the end); empty list when fewer
        than 3 distinct points are given
    """
    unique = list(dict.fromkeys((float(x), float(y)) for x, y in points))
    if len(unique) < 3:
        return []

    cx = sum(p[0] for p in unique) / len(unique)
    cy = sum(p[1] for p in unique) / len(unique)
    unique.sort(key=lambda p: math.atan2(p[1] - cy, p[0] - cx))
    unique.append(unique[0])
    return unique


def largest_polygon(geom: BaseGeometry) -> Polygon:
    """Pick the constituent polygon with the largest area.

    Ties are broken by the first encountered part.
    """
    best = Polygon()
    best_area = -1.0
    for polygon in polygonal_parts(geom):
        if polygon.area > best_area:
            best = polygon
            best_area = polygon.area
    return best


def buffer_polygon(
    polygon: PolygonLike,
    distance: float,
    cap_style: str = "round",
    join_style: str = "round",
) -> PolygonLike:
    """Expand polygon by given distance (buffer).

    Args:
        polygon: Polygon to expand
        distance: Buffer distance (positive = expand)
        cap_style: "round", "flat" or "square"
        join_style: "round", "mitre" or "bevel"

    Returns:
        Buffered polygon
    """
    result = polygon.buffer(distance, cap_style=cap_style, join_style=join_style)

    if not result.is_valid:
        result = make_valid(result)

    return result


def exterior_vertices(geom: BaseGeometry | None) -> Coords:
    """Exterior ring vertices of every part, closing points excluded."""
    vertices: Coords = []
    for polygon in polygonal_parts(geom):
        vertices.extend((float(x), float(y)) for x, y in list(polygon.exterior.coords)[:-1])
    return vertices
