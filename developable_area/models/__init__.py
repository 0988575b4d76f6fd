"""Pydantic models for the developable area engine."""

from .feature import EMPTY_GEOMETRY, DevelopableAreaResult, PolygonFeature
from .settings import (
    BuildSettings,
    ComplexitySettings,
    EngineSettings,
    RemoteServiceSettings,
    ToleranceSettings,
)
from .sources import RestrictionSource

__all__ = [
    # Features
    "PolygonFeature",
    "DevelopableAreaResult",
    "EMPTY_GEOMETRY",
    # Settings
    "EngineSettings",
    "ToleranceSettings",
    "ComplexitySettings",
    "RemoteServiceSettings",
    "BuildSettings",
    # Sources
    "RestrictionSource",
]
