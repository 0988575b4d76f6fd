"""Tier A: exact difference computed by a remote geometry service."""

import logging

from ..errors import GeometryServiceError
from ..geometry.esri import esri_rings_to_geometry, geometry_to_esri_rings
from ..geometry.polygon_ops import feature_to_shape, is_valid_polygon, shape_to_geometry
from ..geometry.reduce import simplify_if_large
from ..geometry.repair import repair_feature
from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings
from ..services.geometry_service import GeometryService

logger = logging.getLogger(__name__)


async def remote_difference(
    minuend: PolygonFeature,
    subtrahend: PolygonFeature,
    service: GeometryService,
    settings: EngineSettings,
) -> PolygonFeature | None:
    """Subtract through the geometry service.

    Both operands are simplified to the remote threshold first to bound the
    payload. Service errors propagate as ``GeometryServiceError``.

    Returns:
        Result feature, or None when the service returned no rings
    """
    threshold = settings.complexity.remote_threshold
    reduced_minuend = simplify_if_large(minuend, threshold, settings)
    reduced_subtrahend = simplify_if_large(subtrahend, threshold, settings)

    rings = await service.difference(
        geometry_to_esri_rings(feature_to_shape(reduced_minuend)),
        geometry_to_esri_rings(feature_to_shape(reduced_subtrahend)),
    )
    if not rings:
        logger.debug("Geometry service returned an empty ring set")
        return None

    try:
        geom = esri_rings_to_geometry(rings)
    except (TypeError, IndexError, KeyError, AttributeError, ValueError) as e:
        raise GeometryServiceError(f"Malformed rings from geometry service: {e}") from e
    if geom.is_empty:
        return None

    result = reduced_minuend.with_geometry(shape_to_geometry(geom))
    if not is_valid_polygon(geom):
        logger.debug("Geometry service result is invalid, repairing")
        result = repair_feature(result, settings)
    return result
