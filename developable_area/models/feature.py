"""Polygon feature and build result models."""

import copy
from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

EMPTY_GEOMETRY: Dict[str, Any] = {"type": "Polygon", "coordinates": []}


class PolygonFeature(BaseModel):
    """Canonical Feature<Polygon|MultiPolygon>.

    ``geometry`` is a GeoJSON geometry dict with closed rings of 2D float
    pairs. ``tags`` carries provenance (``repaired``, ``simplified``,
    ``clipped``, ``differenceTier``, ``isEmpty``, ...). Tags are additive:
    every stage returns a new feature whose tags include all earlier ones.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["Feature"] = "Feature"
    geometry: Dict[str, Any] = Field(..., description="GeoJSON Polygon or MultiPolygon")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Feature attributes")
    tags: Dict[str, Any] = Field(default_factory=dict, description="Provenance tags")

    @property
    def geometry_type(self) -> str:
        return self.geometry.get("type", "Polygon")

    @property
    def is_empty(self) -> bool:
        """True when explicitly tagged empty or when there are no rings."""
        return bool(self.tags.get("isEmpty")) or not self.geometry.get("coordinates")

    def with_tags(self, **tags: Any) -> "PolygonFeature":
        """Return a copy with ``tags`` merged over the existing tags."""
        return self.model_copy(update={"tags": {**self.tags, **tags}})

    def with_geometry(self, geometry: Dict[str, Any], **tags: Any) -> "PolygonFeature":
        """Return a copy with a new geometry and merged tags."""
        return self.model_copy(update={"geometry": geometry, "tags": {**self.tags, **tags}})

    def as_empty(self, **tags: Any) -> "PolygonFeature":
        """Return an explicit empty-geometry copy tagged ``isEmpty``."""
        return self.with_geometry(copy.deepcopy(EMPTY_GEOMETRY), isEmpty=True, **tags)

    def to_geojson(self, include_tags: bool = True) -> Dict[str, Any]:
        """Export as a plain GeoJSON Feature dict.

        Provenance tags are merged into ``properties`` so downstream consumers
        can see how the geometry was produced.
        """
        properties = copy.deepcopy(self.properties)
        if include_tags:
            properties.update(copy.deepcopy(self.tags))
        return {
            "type": "Feature",
            "geometry": copy.deepcopy(self.geometry),
            "properties": properties,
        }


class DevelopableAreaResult(BaseModel):
    """Output of one developable area build."""

    feature: PolygonFeature = Field(..., description="Derived developable area")
    generated_at: datetime = Field(..., description="Generation timestamp (UTC)")
    restricted_areas: Dict[str, int] = Field(
        default_factory=dict,
        description="Restriction features actually subtracted, by source",
    )
    fetched: Dict[str, int] = Field(
        default_factory=dict, description="Restriction features returned, by source"
    )
    degraded: bool = Field(default=False, description="Result fell back to the parcel boundary")
    degradations: List[str] = Field(
        default_factory=list, description="Reasons for degraded operations during the build"
    )
    statistics: Dict[str, Any] = Field(default_factory=dict, description="Run statistics")

    @property
    def is_empty(self) -> bool:
        return self.feature.is_empty

    @property
    def total_subtracted(self) -> int:
        return sum(self.restricted_areas.values())
