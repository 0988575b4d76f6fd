"""Developable Area Engine - Derive developable land from parcel boundaries.

This package provides:
- Robust polygon difference (remote service, Shapely, approximation tiers)
- Polygon normalization, repair and complexity reduction
- Restriction overlay pipeline with per-source accounting
- Host drawing-layer persistence
- MCP tools for area generation

Core functionality can be imported without MCP server dependencies:
    from developable_area.pipeline import generate_developable_area
    from developable_area.difference import DifferenceEngine

To get the MCP server instance:
    from developable_area import get_mcp
    mcp = get_mcp()
"""

__version__ = "0.1.0"


def get_mcp():
    """Get the MCP server instance (lazy import to avoid coupling).

    Returns:
        FastMCP: The configured MCP server instance.

    Example:
        from developable_area import get_mcp
        mcp = get_mcp()
    """
    from .server import mcp
    return mcp


# Expose core modules for direct import without MCP dependency
def get_pipeline():
    """Get the pipeline module for direct use."""
    from . import pipeline
    return pipeline


def get_engine():
    """Get the difference package for direct use."""
    from . import difference
    return difference


__all__ = ["get_mcp", "get_pipeline", "get_engine", "__version__"]
