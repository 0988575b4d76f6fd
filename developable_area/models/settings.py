"""Engine tolerances, thresholds and restriction source configuration."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .sources import RestrictionSource

# Kilometres per degree of latitude on the WGS84 sphere approximation
KM_PER_DEGREE = 111.32


class ToleranceSettings(BaseModel):
    """Epsilon distances and simplification tolerances.

    Distances suffixed ``_km`` are converted to coordinate units through
    ``EngineSettings.km_to_units``. Tolerances without a suffix are already in
    coordinate units.
    """

    repair_buffer_km: float = Field(
        default=0.0001, ge=0, description="Outward buffer used by the repair ladder"
    )
    repair_simplify_tolerance: float = Field(
        default=0.0001, ge=0, description="Simplification tolerance used by the repair ladder"
    )
    collinear_epsilon: float = Field(
        default=1e-12, ge=0, description="Cross-product threshold for collinear vertices"
    )
    area_epsilon: float = Field(
        default=1e-12, ge=0, description="Area differences below this are treated as equal"
    )
    inverse_box_padding_km: float = Field(
        default=1.0, ge=0, description="Padding of the bounding box used for inverse differences"
    )
    cover_buffer_km: float = Field(
        default=0.00001, ge=0, description="Slack used when testing that a subtrahend covers a minuend"
    )


class ComplexitySettings(BaseModel):
    """Vertex thresholds and staged simplification tolerances."""

    simplify_threshold: int = Field(
        default=100, ge=4, description="Vertex count above which restriction features are reduced"
    )
    remote_threshold: int = Field(
        default=50, ge=4, description="Vertex count above which Tier A operands are simplified"
    )
    aggressive_point_limit: int = Field(
        default=500, ge=4, description="Vertex count that triggers the aggressive second pass"
    )
    base_tolerance: float = Field(default=0.0001, gt=0)
    large_tolerance: float = Field(
        default=0.0005, gt=0, description="First-pass tolerance above 500 vertices"
    )
    huge_tolerance: float = Field(
        default=0.001, gt=0, description="First-pass tolerance above 1000 vertices"
    )
    aggressive_tolerance: float = Field(default=0.005, gt=0)
    max_escalation_rounds: int = Field(
        default=16, ge=0, description="Tolerance doublings allowed to get under the threshold"
    )
    clip_buffer_km: float = Field(
        default=0.5, ge=0, description="Neighbourhood kept around the boundary when clipping"
    )


class RemoteServiceSettings(BaseModel):
    """ArcGIS GeometryServer used by difference Tier A."""

    enabled: bool = Field(default=False, description="Use the remote geometry service")
    url: str = Field(
        default="https://utility.arcgisonline.com/ArcGIS/rest/services/Geometry/GeometryServer",
        description="GeometryServer base URL",
    )
    wkid: int = Field(default=4326, description="Spatial reference sent with requests")
    timeout_s: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class BuildSettings(BaseModel):
    """Area builder behaviour."""

    envelope_padding: float = Field(
        default=0.2, ge=0, description="Fractional padding of the source query envelope"
    )
    query_timeout_s: float = Field(default=30.0, gt=0)
    min_part_area: float = Field(
        default=0.0, ge=0, description="Parts smaller than this are dropped when finalizing"
    )
    approximate_augment_below: int = Field(
        default=10, ge=0, description="Tier C adds edge intersections below this survivor count"
    )


class EngineSettings(BaseModel):
    """Complete settings for one developable area computation.

    Loaded from a YAML profile and overridable at request time via JSON merge
    patch.
    """

    coordinate_units: Literal["degrees", "m"] = Field(
        default="degrees", description="Units of input coordinates"
    )
    tolerances: ToleranceSettings = Field(default_factory=ToleranceSettings)
    complexity: ComplexitySettings = Field(default_factory=ComplexitySettings)
    remote: RemoteServiceSettings = Field(default_factory=RemoteServiceSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    restriction_sources: List[RestrictionSource] = Field(
        default_factory=list, description="Overlay categories subtracted from the boundary"
    )

    def km_to_units(self, km: float) -> float:
        """Convert a distance in kilometres to coordinate units."""
        if self.coordinate_units == "m":
            return km * 1000.0
        return km / KM_PER_DEGREE

    def get_source(self, name: str) -> Optional[RestrictionSource]:
        """Get a restriction source by name."""
        for source in self.restriction_sources:
            if source.name == name:
                return source
        return None

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "EngineSettings":
        """Load settings from YAML string."""
        import yaml
        data = yaml.safe_load(yaml_content) or {}
        return cls(**data)

    def merge_override(self, override: Dict) -> "EngineSettings":
        """Merge override dict into these settings (JSON merge patch semantics)."""
        import json
        base = json.loads(self.model_dump_json())
        _deep_merge(base, override)
        return EngineSettings(**base)


def _deep_merge(base: Dict, override: Dict) -> None:
    """Deep merge override into base dict (modifies base in place)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
