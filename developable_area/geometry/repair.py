"""Polygon validation and repair.

Repairs run as an ordered ladder of strategies. Each strategy returns a
candidate geometry (or None) and every candidate is re-checked against the
same validity predicate; the first valid candidate wins:

1. Already valid: returned unchanged
2. Outward buffer by a small epsilon
3. Duplicate and collinear vertex removal
4. Light simplification
5. Convex hull (lossy over-approximation, tagged ``approximate``)
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

from ..errors import RepairFailure
from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings
from .polygon_ops import (
    Coords,
    PolygonLike,
    combine_parts,
    feature_to_shape,
    is_valid_polygon,
    polygonal_parts,
    shape_to_geometry,
)

logger = logging.getLogger(__name__)

RepairStrategy = Callable[[PolygonLike, EngineSettings], Optional[BaseGeometry]]


def is_valid_feature(feature: PolygonFeature) -> bool:
    """Check a feature against the global validity predicate."""
    if feature is None or feature.is_empty:
        return False
    try:
        geom = feature_to_shape(feature)
    except (GEOSException, ValueError, TypeError) as e:
        logger.debug(f"Feature geometry could not be built: {e}")
        return False
    return is_valid_polygon(geom)


def _buffer_outward(geom: PolygonLike, settings: EngineSettings) -> Optional[BaseGeometry]:
    distance = settings.km_to_units(settings.tolerances.repair_buffer_km)
    if distance <= 0:
        return None
    return geom.buffer(distance)


def _remove_redundant_vertices(geom: PolygonLike, settings: EngineSettings) -> Optional[BaseGeometry]:
    epsilon = settings.tolerances.collinear_epsilon
    cleaned = []
    for polygon in polygonal_parts(geom):
        shell = clean_ring(list(polygon.exterior.coords), epsilon)
        if not shell:
            continue
        holes = [clean_ring(list(ring.coords), epsilon) for ring in polygon.interiors]
        cleaned.append(Polygon(shell, [h for h in holes if h]))
    if not cleaned:
        return None
    return combine_parts(cleaned)


def _simplify(geom: PolygonLike, settings: EngineSettings) -> Optional[BaseGeometry]:
    tolerance = settings.tolerances.repair_simplify_tolerance
    if tolerance <= 0:
        return None
    return geom.simplify(tolerance, preserve_topology=False)


def _convex_hull(geom: PolygonLike, settings: EngineSettings) -> Optional[BaseGeometry]:
    return geom.convex_hull


# (name, strategy, extra tags)
REPAIR_LADDER: list[tuple[str, RepairStrategy, dict]] = [
    ("buffer", _buffer_outward, {}),
    ("clean_coords", _remove_redundant_vertices, {}),
    ("simplify", _simplify, {}),
    ("convex_hull", _convex_hull, {"approximate": True}),
]


def repair_feature(
    feature: PolygonFeature,
    settings: EngineSettings | None = None,
) -> PolygonFeature:
    """Return a valid version of ``feature``.

    Args:
        feature: Normalized polygon feature
        settings: Engine settings (defaults used when None)

    Returns:
        The input itself when already valid, otherwise a new feature tagged
        ``repaired`` with the winning ``repairStrategy``

    Raises:
        RepairFailure: If no strategy produces a valid polygon
    """
    if feature.is_empty:
        raise RepairFailure("Cannot repair an empty geometry")

    if is_valid_feature(feature):
        return feature

    settings = settings or EngineSettings()
    try:
        geom = feature_to_shape(feature)
    except (GEOSException, ValueError, TypeError) as e:
        raise RepairFailure(f"Geometry could not be built: {e}") from e

    attempts = []
    for name, strategy, extra_tags in REPAIR_LADDER:
        try:
            candidate = strategy(geom, settings)
        except (GEOSException, ValueError) as e:
            logger.debug(f"Repair strategy {name} raised: {e}")
            attempts.append(f"{name}: {e}")
            continue

        if candidate is None:
            attempts.append(f"{name}: not applicable")
            continue

        if is_valid_polygon(candidate):
            logger.debug(f"Repair strategy {name} produced a valid polygon")
            return feature.with_geometry(
                shape_to_geometry(candidate),
                repaired=True,
                repairStrategy=name,
                **extra_tags,
            )
        attempts.append(f"{name}: result invalid")

    logger.warning(f"All polygon repair strategies failed: {attempts}")
    raise RepairFailure("All polygon repair strategies failed", attempts=attempts)


def clean_ring(coords: Coords, epsilon: float = 1e-12) -> Coords:
    """Remove duplicate and collinear-adjacent vertices from a closed ring.

    Args:
        coords: Closed ring coordinates
        epsilon: Cross-product magnitude treated as collinear

    Returns:
        Closed ring with at least 4 coordinates, or an empty list when fewer
        than 3 distinct vertices remain
    """
    points = [(float(c[0]), float(c[1])) for c in coords]
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]

    deduped: Coords = []
    for p in points:
        if not deduped or deduped[-1] != p:
            deduped.append(p)
    if len(deduped) > 1 and deduped[0] == deduped[-1]:
        deduped.pop()

    changed = True
    while changed and len(deduped) >= 3:
        changed = False
        for i in range(len(deduped)):
            prev_pt = deduped[i - 1]
            pt = deduped[i]
            next_pt = deduped[(i + 1) % len(deduped)]
            cross = (
                (pt[0] - prev_pt[0]) * (next_pt[1] - pt[1])
                - (pt[1] - prev_pt[1]) * (next_pt[0] - pt[0])
            )
            if abs(cross) <= epsilon:
                del deduped[i]
                changed = True
                break

    if len(deduped) < 3:
        return []
    return deduped + [deduped[0]]
