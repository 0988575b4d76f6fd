"""Tier B: exact local boolean difference with Shapely.

Degenerate operands (short rings, zero-width boxes, zero area) are detected
up front and routed through the inverse rewrite::

    A - B  ==  A & (box(A) - B)

where ``box(A)`` is the padded bounding box of the minuend. The same rewrite
is retried once when the direct path raises a GEOS error.
"""

import logging

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from ..geometry.polygon_ops import (
    combine_parts,
    feature_to_shape,
    polygonal_parts,
    shape_to_geometry,
)
from ..geometry.repair import repair_feature
from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings

logger = logging.getLogger(__name__)


def degenerate_reason(
    minuend: PolygonFeature,
    subtrahend: PolygonFeature,
    settings: EngineSettings,
) -> str | None:
    """Name the first degenerate condition of an operand pair, if any.

    Returns:
        Human readable reason, or None when both operands are well-formed
    """
    for role, feature in (("minuend", minuend), ("subtrahend", subtrahend)):
        reason = _degenerate_operand(feature, settings)
        if reason:
            return f"{role} {reason}"
    return None


def _degenerate_operand(feature: PolygonFeature, settings: EngineSettings) -> str | None:
    coordinates = feature.geometry.get("coordinates") or []
    polygons = coordinates if feature.geometry_type == "MultiPolygon" else [coordinates]
    for polygon in polygons:
        for ring in polygon:
            if len(ring) < 4:
                return f"has a ring with {len(ring)} points"

    geom = shape(feature.geometry)
    min_x, min_y, max_x, max_y = geom.bounds
    if max_x - min_x <= 0 or max_y - min_y <= 0:
        return "has a zero-width bounding box"
    if abs(geom.area) <= settings.tolerances.area_epsilon:
        return "has zero area"
    return None


def lenient_shape(feature: PolygonFeature) -> BaseGeometry:
    """Build a geometry, dropping rings too short to form a ring."""
    coordinates = feature.geometry.get("coordinates") or []
    polygons = coordinates if feature.geometry_type == "MultiPolygon" else [coordinates]
    parts = []
    for rings in polygons:
        if not rings or len(rings[0]) < 4:
            continue
        holes = [ring for ring in rings[1:] if len(ring) >= 4]
        parts.append(Polygon(rings[0], holes))
    if not parts:
        return Polygon()
    if len(parts) == 1:
        return parts[0]
    return MultiPolygon(parts)


def _as_polygonal(geom: BaseGeometry) -> BaseGeometry:
    if not geom.is_valid:
        geom = make_valid(geom)
    return combine_parts(polygonal_parts(geom))


def inverse_difference(
    minuend: BaseGeometry,
    subtrahend: BaseGeometry,
    settings: EngineSettings,
) -> BaseGeometry:
    """Difference through intersection with the subtrahend's complement."""
    minuend = _as_polygonal(minuend)
    if minuend.is_empty:
        return minuend

    if not subtrahend.is_valid:
        subtrahend = make_valid(subtrahend)

    padding = settings.km_to_units(settings.tolerances.inverse_box_padding_km)
    min_x, min_y, max_x, max_y = minuend.bounds
    envelope = box(min_x - padding, min_y - padding, max_x + padding, max_y + padding)

    inverse = envelope.difference(subtrahend)
    return combine_parts(polygonal_parts(minuend.intersection(inverse)))


def _direct_difference(minuend: BaseGeometry, subtrahend: BaseGeometry) -> BaseGeometry:
    subtrahend_parts = polygonal_parts(subtrahend)
    surviving = []
    for part in polygonal_parts(minuend):
        remainder = part
        for cutter in subtrahend_parts:
            if remainder.is_empty:
                break
            remainder = remainder.difference(cutter)
        surviving.extend(polygonal_parts(remainder))
    return combine_parts(surviving)


def _covers(subtrahend: BaseGeometry, minuend: BaseGeometry, settings: EngineSettings) -> bool:
    slack = settings.km_to_units(settings.tolerances.cover_buffer_km)
    try:
        cover = subtrahend.buffer(slack) if slack > 0 else subtrahend
        return cover.covers(minuend)
    except GEOSException as e:
        logger.debug(f"Cover test raised: {e}")
        return False


def local_difference(
    minuend: PolygonFeature,
    subtrahend: PolygonFeature,
    settings: EngineSettings,
) -> PolygonFeature | None:
    """Subtract with Shapely, rewriting degenerate pairs.

    Returns:
        Result feature (tagged ``isEmpty`` when nothing remains), or None when
        the result is empty although the subtrahend does not cover the
        minuend

    Raises:
        RepairFailure: If a well-formed operand cannot be repaired
        GEOSException: If the rewrite also fails
    """
    tags = {}
    reason = degenerate_reason(minuend, subtrahend, settings)

    if reason:
        logger.debug(f"Degenerate operands ({reason}), using inverse rewrite")
        minuend_geom = lenient_shape(minuend)
        subtrahend_geom = lenient_shape(subtrahend)
        result = inverse_difference(minuend_geom, subtrahend_geom, settings)
        tags = {"inverseRewrite": True, "degenerateReason": reason}
    else:
        minuend = repair_feature(minuend, settings)
        subtrahend = repair_feature(subtrahend, settings)
        minuend_geom = feature_to_shape(minuend)
        subtrahend_geom = feature_to_shape(subtrahend)
        try:
            result = _direct_difference(minuend_geom, subtrahend_geom)
        except GEOSException as e:
            logger.debug(f"Direct difference raised ({e}), retrying with inverse rewrite")
            result = inverse_difference(minuend_geom, subtrahend_geom, settings)
            tags = {"inverseRewrite": True}

    if result.is_empty:
        if _covers(subtrahend_geom, minuend_geom, settings):
            return minuend.as_empty(**tags)
        logger.debug("Empty local difference but subtrahend does not cover minuend")
        return None

    return minuend.with_geometry(shape_to_geometry(result), **tags)
