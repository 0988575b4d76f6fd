"""GeoJSON export utilities for developable area results."""

from typing import Any

from ..models.feature import DevelopableAreaResult


def result_to_feature(
    result: DevelopableAreaResult,
    include_tags: bool = True,
) -> dict[str, Any]:
    """Convert a build result to a single GeoJSON Feature.

    Args:
        result: DevelopableAreaResult to export
        include_tags: Merge provenance tags into the feature properties

    Returns:
        GeoJSON Feature dict carrying ``generatedDevelopableArea``,
        ``generatedTimestamp`` and ``restrictedAreas``
    """
    feature = result.feature.to_geojson(include_tags=include_tags)
    properties = feature["properties"]
    properties["generatedDevelopableArea"] = True
    properties["generatedTimestamp"] = result.generated_at.isoformat()
    properties["restrictedAreas"] = dict(result.restricted_areas)
    if result.degraded:
        properties["degraded"] = True
    return feature


def result_to_feature_collection(
    result: DevelopableAreaResult,
    include_tags: bool = True,
    include_statistics: bool = False,
) -> dict[str, Any]:
    """Convert a build result to a FeatureCollection with exactly one Feature.

    Args:
        result: DevelopableAreaResult to export
        include_tags: Merge provenance tags into the feature properties
        include_statistics: Attach run statistics as collection properties

    Returns:
        GeoJSON FeatureCollection dict
    """
    collection: dict[str, Any] = {
        "type": "FeatureCollection",
        "features": [result_to_feature(result, include_tags=include_tags)],
    }
    if include_statistics:
        collection["properties"] = {
            "fetched": dict(result.fetched),
            "degradations": list(result.degradations),
            "statistics": dict(result.statistics),
        }
    return collection
