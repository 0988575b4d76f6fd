"""Export utilities for developable area results."""

from .geojson import result_to_feature, result_to_feature_collection

__all__ = [
    "result_to_feature",
    "result_to_feature_collection",
]
