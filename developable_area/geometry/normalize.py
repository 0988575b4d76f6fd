"""Feature normalization.

Canonicalizes arbitrary GeoJSON-like input (Feature, bare geometry,
FeatureCollection, or an ad hoc object carrying ``coordinates``) into a
well-formed Feature<Polygon|MultiPolygon> with closed 2D rings.
"""

import copy
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from shapely.errors import GEOSException
from shapely.geometry import shape

from ..errors import NormalizationError
from ..models.feature import PolygonFeature
from .polygon_ops import buffer_polygon, shape_to_geometry

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = {
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
    "GeometryCollection",
}
LINE_TYPES = {"LineString", "MultiLineString"}

Ring = list[list[float]]


def normalize_feature(value: Any) -> PolygonFeature:
    """Normalize GeoJSON-like input into a canonical polygon feature.

    Args:
        value: Feature, FeatureCollection (first feature is used), bare
            geometry, or any mapping with ``geometry`` or ``coordinates``

    Returns:
        PolygonFeature with closed rings of at least 4 points

    Raises:
        NormalizationError: If coordinates are missing, the geometry is not
            polygonal, or a ring cannot be closed into 4+ points
    """
    if isinstance(value, PolygonFeature):
        return value

    geometry, properties = _split_feature(value)
    geometry_type, coordinates = _geometry_parts(geometry)

    if geometry_type == "Polygon":
        normalized = {"type": "Polygon", "coordinates": _normalize_polygon(coordinates)}
    elif geometry_type == "MultiPolygon":
        if not _is_sequence(coordinates) or not coordinates:
            raise NormalizationError("MultiPolygon has no polygons")
        normalized = {
            "type": "MultiPolygon",
            "coordinates": [_normalize_polygon(p) for p in coordinates],
        }
    else:
        raise NormalizationError(f"Unsupported geometry type: {geometry_type}")

    return PolygonFeature(geometry=normalized, properties=properties)


def normalize_restriction(value: Any, line_buffer: float | None = None) -> PolygonFeature:
    """Normalize a restriction feature, turning line overlays into corridors.

    Args:
        value: GeoJSON-like restriction feature
        line_buffer: Corridor half-width in coordinate units applied to
            LineString/MultiLineString geometries (None = reject lines)

    Returns:
        PolygonFeature

    Raises:
        NormalizationError: If the input cannot be normalized
    """
    geometry, properties = _split_feature(value)
    geometry_type = geometry.get("type") if isinstance(geometry, Mapping) else None

    if geometry_type in LINE_TYPES and line_buffer:
        try:
            corridor = buffer_polygon(shape(geometry), line_buffer)
        except (GEOSException, ValueError, TypeError, AttributeError) as e:
            raise NormalizationError(f"Could not buffer {geometry_type}: {e}") from e
        if corridor.is_empty:
            raise NormalizationError(f"Buffered {geometry_type} is empty")
        return normalize_feature({
            "type": "Feature",
            "geometry": shape_to_geometry(corridor),
            "properties": properties,
        }).with_tags(lineBuffered=True)

    return normalize_feature(value)


def _split_feature(value: Any) -> tuple[Any, dict]:
    """Return (geometry, properties) for any supported input shape."""
    if not isinstance(value, Mapping):
        raise NormalizationError(f"Expected a GeoJSON mapping, got {type(value).__name__}")

    kind = value.get("type")

    if kind == "FeatureCollection":
        features = value.get("features") or []
        if not features:
            raise NormalizationError("FeatureCollection has no features")
        if len(features) > 1:
            logger.debug(f"FeatureCollection has {len(features)} features, using the first")
        return _split_feature(features[0])

    if kind == "Feature" or (kind is None and "geometry" in value):
        geometry = value.get("geometry")
        if not geometry:
            raise NormalizationError("Feature has no geometry")
        return geometry, _copy_properties(value.get("properties"))

    if kind in GEOMETRY_TYPES:
        return value, {}

    if "coordinates" in value:
        # Untyped coordinates default to a Polygon
        return {"type": None, "coordinates": value["coordinates"]}, _copy_properties(
            value.get("properties")
        )

    raise NormalizationError("Input has no geometry or coordinates")


def _copy_properties(properties: Any) -> dict:
    if not properties:
        return {}
    if not isinstance(properties, Mapping):
        raise NormalizationError("Feature properties must be a mapping")
    return copy.deepcopy(dict(properties))


def _geometry_parts(geometry: Any) -> tuple[str, Any]:
    if not isinstance(geometry, Mapping):
        raise NormalizationError("Geometry must be a mapping")

    coordinates = geometry.get("coordinates")
    if coordinates is None or (_is_sequence(coordinates) and len(coordinates) == 0):
        raise NormalizationError("Geometry has no coordinates")

    geometry_type = geometry.get("type")
    if not geometry_type:
        geometry_type = "MultiPolygon" if _nesting_depth(coordinates) >= 4 else "Polygon"
    return geometry_type, coordinates


def _normalize_polygon(coordinates: Any) -> list[Ring]:
    """Normalize one polygon's ring list, closing open rings."""
    if not _is_sequence(coordinates) or not coordinates:
        raise NormalizationError("Polygon has no rings")

    # A single bare ring is wrapped as the exterior
    if _nesting_depth(coordinates) == 2:
        coordinates = [coordinates]

    return [_normalize_ring(ring) for ring in coordinates]


def _normalize_ring(ring: Any) -> Ring:
    if not _is_sequence(ring):
        raise NormalizationError("Ring must be a sequence of coordinates")

    points = [_normalize_point(p) for p in ring]
    if points and points[0] != points[-1]:
        points.append(list(points[0]))

    if len(points) < 4:
        raise NormalizationError(f"Ring has {len(points)} points, at least 4 required")
    return points


def _normalize_point(point: Any) -> list[float]:
    if not _is_sequence(point) or len(point) < 2:
        raise NormalizationError(f"Invalid coordinate: {point!r}")
    try:
        x, y = float(point[0]), float(point[1])
    except (TypeError, ValueError) as e:
        raise NormalizationError(f"Non-numeric coordinate: {point!r}") from e
    if not (math.isfinite(x) and math.isfinite(y)):
        raise NormalizationError(f"Non-finite coordinate: {point!r}")
    return [x, y]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _nesting_depth(value: Any) -> int:
    """Depth of nested sequences (a coordinate pair has depth 1)."""
    depth = 0
    while _is_sequence(value) and value:
        depth += 1
        value = value[0]
    return depth
