"""Complexity reduction for oversized restriction polygons.

Overlay layers routinely return polygons with thousands of vertices. They are
reduced before any boolean work, either by staged simplification or by
clipping them to the neighbourhood of the parcel boundary.
"""

from __future__ import annotations

import logging

from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon
from shapely.geometry.base import BaseGeometry

from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings
from .polygon_ops import (
    PolygonLike,
    buffer_polygon,
    combine_parts,
    count_coords,
    exterior_vertices,
    feature_to_shape,
    is_valid_polygon,
    polar_ring,
    polygonal_parts,
    shape_to_geometry,
)

logger = logging.getLogger(__name__)


def count_vertices(feature: PolygonFeature) -> int:
    """Total coordinates across all rings of a feature."""
    if feature.is_empty:
        return 0
    return count_coords(feature_to_shape(feature))


def initial_tolerance(vertex_count: int, settings: EngineSettings) -> float:
    """First-pass simplification tolerance, escalated by vertex count."""
    complexity = settings.complexity
    if vertex_count > 1000:
        return complexity.huge_tolerance
    if vertex_count > complexity.aggressive_point_limit:
        return complexity.large_tolerance
    return complexity.base_tolerance


def _try_simplify(geom: PolygonLike, tolerance: float) -> BaseGeometry | None:
    try:
        candidate = geom.simplify(tolerance, preserve_topology=True)
    except (GEOSException, ValueError) as e:
        logger.debug(f"Simplify at tolerance {tolerance} raised: {e}")
        return None
    if not is_valid_polygon(candidate):
        return None
    return candidate


def simplify_if_large(
    feature: PolygonFeature,
    threshold: int = 100,
    settings: EngineSettings | None = None,
) -> PolygonFeature:
    """Simplify a feature whose vertex count exceeds ``threshold``.

    Simplification is staged: a modest tolerance chosen by vertex count, an
    aggressive second pass when the result is still above the aggressive
    point limit, then tolerance doubling until the count is within
    ``threshold`` or the escalation rounds run out. Only candidates that pass
    the validity predicate are accepted.

    Args:
        feature: Feature to reduce
        threshold: Maximum acceptable vertex count
        settings: Engine settings (defaults used when None)

    Returns:
        The input unchanged when small enough or when no valid reduction was
        found, otherwise a new feature tagged ``simplified`` with
        ``originalVertexCount``
    """
    original_count = count_vertices(feature)
    if original_count <= threshold:
        return feature

    settings = settings or EngineSettings()
    complexity = settings.complexity
    geom = feature_to_shape(feature)

    tolerance = initial_tolerance(original_count, settings)
    best = _try_simplify(geom, tolerance)
    best_count = count_coords(best) if best is not None else original_count

    if best_count > complexity.aggressive_point_limit:
        tolerance = max(tolerance, complexity.aggressive_tolerance)
        candidate = _try_simplify(geom, tolerance)
        if candidate is not None and count_coords(candidate) < best_count:
            best, best_count = candidate, count_coords(candidate)

    rounds = 0
    while best_count > threshold and rounds < complexity.max_escalation_rounds:
        tolerance *= 2
        rounds += 1
        candidate = _try_simplify(geom, tolerance)
        if candidate is not None and count_coords(candidate) < best_count:
            best, best_count = candidate, count_coords(candidate)

    if best is None or best_count >= original_count:
        logger.warning(f"Could not simplify feature with {original_count} vertices")
        return feature

    if best_count > threshold:
        logger.warning(
            f"Simplified {original_count} -> {best_count} vertices, "
            f"still above threshold {threshold}"
        )
    else:
        logger.debug(f"Simplified {original_count} -> {best_count} vertices (tolerance {tolerance:g})")

    return feature.with_geometry(
        shape_to_geometry(best),
        simplified=True,
        originalVertexCount=original_count,
    )


def _clip_by_vertex_filter(geom: PolygonLike, area: BaseGeometry) -> BaseGeometry | None:
    # Best effort: polar ordering is only faithful for star-shaped survivor sets
    survivors = [p for p in exterior_vertices(geom) if area.covers(Point(p))]
    ring = polar_ring(survivors)
    if not ring:
        return None
    return Polygon(ring)


def _clip_by_intersection(geom: PolygonLike, area: BaseGeometry) -> BaseGeometry | None:
    clipped = geom.intersection(area)
    parts = polygonal_parts(clipped)
    if not parts:
        return None
    return combine_parts(parts)


def _clip_by_simplification(geom: PolygonLike, settings: EngineSettings) -> BaseGeometry | None:
    return geom.simplify(settings.complexity.base_tolerance, preserve_topology=True)


def clip_to_buffer(
    feature: PolygonFeature,
    boundary: PolygonFeature,
    buffer_km: float = 0.5,
    settings: EngineSettings | None = None,
) -> PolygonFeature:
    """Restrict a feature to the neighbourhood of a boundary.

    Methods are tried in order (vertex filter, exact intersection, plain
    simplification); the first one that yields a valid polygon wins.

    Args:
        feature: Oversized restriction feature
        boundary: Boundary whose buffered neighbourhood is kept
        buffer_km: Neighbourhood width in kilometres
        settings: Engine settings (defaults used when None)

    Returns:
        Feature tagged ``clipped`` and ``clipMethod``, or the input unchanged
        when every vertex is already inside the neighbourhood or no method
        succeeded
    """
    if feature.is_empty or boundary.is_empty:
        return feature

    settings = settings or EngineSettings()
    geom = feature_to_shape(feature)
    area = buffer_polygon(feature_to_shape(boundary), settings.km_to_units(buffer_km))

    vertices = exterior_vertices(geom)
    if all(area.covers(Point(p)) for p in vertices):
        return feature

    methods = [
        ("vertexFilter", lambda: _clip_by_vertex_filter(geom, area), {"approximate": True}),
        ("intersection", lambda: _clip_by_intersection(geom, area), {}),
        ("simplify", lambda: _clip_by_simplification(geom, settings), {}),
    ]

    for name, method, extra_tags in methods:
        try:
            candidate = method()
        except (GEOSException, ValueError) as e:
            logger.debug(f"Clip method {name} raised: {e}")
            continue
        if candidate is not None and is_valid_polygon(candidate):
            logger.debug(
                f"Clipped feature with {len(vertices)} outer vertices using {name} "
                f"({count_coords(candidate)} coordinates kept)"
            )
            return feature.with_geometry(
                shape_to_geometry(candidate),
                clipped=True,
                clipMethod=name,
                **extra_tags,
            )

    logger.warning("All clip methods failed, keeping feature unchanged")
    return feature
