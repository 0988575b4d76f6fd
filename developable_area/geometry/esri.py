"""ESRI JSON ring codec.

ArcGIS services describe polygons as a flat list of rings. Outer rings run
clockwise and holes counter-clockwise, but services do not always honour
that, so parsing assigns shells and holes by nesting depth instead of
winding.
"""

import logging

from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from .polygon_ops import combine_parts, polygonal_parts

logger = logging.getLogger(__name__)

EsriRing = list[list[float]]


def geometry_to_esri_rings(geom: BaseGeometry) -> list[EsriRing]:
    """Serialize a Polygon/MultiPolygon to ESRI rings.

    Args:
        geom: Shapely geometry

    Returns:
        Flat list of closed rings, exteriors clockwise and holes
        counter-clockwise
    """
    rings: list[EsriRing] = []
    for polygon in polygonal_parts(geom):
        oriented = orient(polygon, sign=-1.0)
        rings.append([[float(x), float(y)] for x, y in oriented.exterior.coords])
        for interior in oriented.interiors:
            rings.append([[float(x), float(y)] for x, y in interior.coords])
    return rings


def esri_rings_to_geometry(rings: list) -> BaseGeometry:
    """Parse ESRI rings into a Polygon/MultiPolygon.

    Rings are closed if needed; rings shorter than 4 points are dropped.
    A ring nested inside an even number of other rings is a shell, an odd
    number makes it a hole of the smallest enclosing shell.

    Args:
        rings: ESRI ``rings`` array

    Returns:
        Polygon, MultiPolygon or empty Polygon. The result is not validated.
    """
    ring_polygons: list[Polygon] = []
    for ring in rings or []:
        coords = [(float(p[0]), float(p[1])) for p in ring]
        if coords and coords[0] != coords[-1]:
            coords.append(coords[0])
        if len(coords) < 4:
            logger.debug(f"Dropping ESRI ring with {len(coords)} points")
            continue
        ring_polygons.append(Polygon(coords))

    if not ring_polygons:
        return Polygon()

    # Larger rings first so enclosing rings are seen before their holes
    ring_polygons.sort(key=lambda p: abs(p.area), reverse=True)

    shells: list[tuple[Polygon, list]] = []
    for i, candidate in enumerate(ring_polygons):
        probe = _probe_point(candidate)
        enclosing = [j for j in range(i) if _ring_covers(ring_polygons[j], probe)]

        if len(enclosing) % 2 == 0:
            shells.append((candidate, []))
            continue

        # Smallest enclosing shell is the last one appended among the enclosers
        for shell, holes in reversed(shells):
            if _ring_covers(shell, probe):
                holes.append(candidate.exterior.coords)
                break

    return combine_parts([Polygon(shell.exterior.coords, holes) for shell, holes in shells])


def _probe_point(ring_polygon: Polygon):
    try:
        return ring_polygon.representative_point()
    except GEOSException:
        return ring_polygon.centroid


def _ring_covers(ring_polygon: Polygon, point) -> bool:
    try:
        return ring_polygon.covers(point)
    except GEOSException:
        return False
