"""Remote collaborators: geometry service and restriction source providers."""

from .geometry_service import ArcGISGeometryService, GeometryService, parse_difference_response
from .sources import (
    ArcGISRestrictionSourceProvider,
    Envelope,
    RestrictionSourceProvider,
    StaticRestrictionSourceProvider,
    build_query_params,
)

__all__ = [
    "GeometryService",
    "ArcGISGeometryService",
    "parse_difference_response",
    "RestrictionSourceProvider",
    "ArcGISRestrictionSourceProvider",
    "StaticRestrictionSourceProvider",
    "build_query_params",
    "Envelope",
]
