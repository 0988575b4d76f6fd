"""Restriction source (overlay layer) models."""

from pydantic import BaseModel, Field


class RestrictionSource(BaseModel):
    """A named overlay category subtracted from the parcel boundary.

    Sources are queried over an envelope around the boundary. New categories
    only need a new entry in the settings profile.
    """

    name: str = Field(..., description="Category key, e.g. biodiversity, flood, easements")
    description: str | None = Field(default=None, description="Human readable label")
    url: str | None = Field(default=None, description="ArcGIS MapServer/FeatureServer base URL")
    layer_id: int | None = Field(default=None, description="Layer index under the service URL")
    where: str = Field(default="1=1", description="Attribute filter for the query")
    out_fields: str = Field(default="*", description="Attribute fields returned by the query")
    in_sr: int = Field(default=4326, description="Spatial reference of the query envelope")
    out_sr: int = Field(default=4326, description="Spatial reference of returned geometry")
    line_buffer_km: float | None = Field(
        default=None,
        ge=0,
        description="Corridor width applied to line features (e.g. power lines)",
    )
    enabled: bool = Field(default=True, description="Skip the source when False")

    @property
    def query_url(self) -> str | None:
        """Full query endpoint for the source, if it is remote."""
        if not self.url:
            return None
        base = self.url.rstrip("/")
        if self.layer_id is not None:
            base = f"{base}/{self.layer_id}"
        return f"{base}/query"
