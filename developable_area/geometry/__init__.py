"""Geometry operations for developable area computation using Shapely."""

from .esri import esri_rings_to_geometry, geometry_to_esri_rings
from .normalize import normalize_feature, normalize_restriction
from .polygon_ops import (
    buffer_polygon,
    combine_parts,
    feature_to_shape,
    geometry_area,
    is_valid_polygon,
    largest_polygon,
    polar_ring,
    polygonal_parts,
    shape_to_geometry,
)
from .reduce import clip_to_buffer, count_vertices, simplify_if_large
from .repair import is_valid_feature, repair_feature

__all__ = [
    # Normalization
    "normalize_feature",
    "normalize_restriction",
    # Validation and repair
    "is_valid_feature",
    "repair_feature",
    # Complexity reduction
    "count_vertices",
    "simplify_if_large",
    "clip_to_buffer",
    # ESRI codec
    "geometry_to_esri_rings",
    "esri_rings_to_geometry",
    # Polygon helpers
    "feature_to_shape",
    "shape_to_geometry",
    "polygonal_parts",
    "combine_parts",
    "is_valid_polygon",
    "geometry_area",
    "largest_polygon",
    "polar_ring",
    "buffer_polygon",
]
