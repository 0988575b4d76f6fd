"""FastMCP server for developable area generation.

Exposes MCP tools for deriving the developable area of a parcel, running
single robust differences and repairs, and writing results into host drawing
layers.
"""

import logging
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP

from .difference.engine import DifferenceEngine
from .errors import DevelopableAreaError, DifferenceDegraded, SyncFailure
from .export.geojson import result_to_feature_collection
from .geometry.normalize import normalize_feature
from .geometry.reduce import count_vertices
from .geometry.repair import is_valid_feature, repair_feature
from .models.feature import DevelopableAreaResult
from .models.settings import EngineSettings
from .models.sources import RestrictionSource
from .pipeline import generate_developable_area
from .profiles.loader import default_profile_name, list_profiles, load_profile
from .services.sources import ArcGISRestrictionSourceProvider, StaticRestrictionSourceProvider
from .sync.layer_sync import InMemoryLayerStore, sync_developable_area

# Configure logging to stderr (required for MCP stdio transport)
# stdio servers must NOT log to stdout as it interferes with JSON-RPC
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,  # Critical: use stderr, not stdout
)
logger = logging.getLogger(__name__)

# Create MCP server (following Python naming convention: {service}_mcp)
mcp = FastMCP(
    name="devarea_mcp",
    instructions="Derive the developable area of a land parcel by subtracting planning and "
    "environmental restriction overlays. Use devarea_generate to build an area, "
    "devarea_sync_layer to write it into a drawing layer, and devarea_difference or "
    "devarea_repair for single geometry operations.",
)

# In-memory storage for build results and host layers
_results: dict[str, DevelopableAreaResult] = {}
_layer_store = InMemoryLayerStore()


def _settings(profile: str | None, settings_override: dict[str, Any] | None) -> EngineSettings:
    return load_profile(profile or default_profile_name(), override=settings_override)


@mcp.tool(
    annotations={
        "readOnlyHint": False,  # Stores the result for later sync
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,  # May query remote overlay services
    }
)
async def devarea_generate(
    boundary: dict[str, Any],
    restrictions: dict[str, Any] | None = None,
    use_remote_sources: bool = False,
    profile: str | None = None,
    settings_override: dict[str, Any] | None = None,
    include_statistics: bool = True,
) -> dict[str, Any]:
    """Generate the developable area of a parcel.

    Subtracts every intersecting restriction feature from the parcel
    boundary using the robust multi-tier difference engine.

    Args:
        boundary: Parcel boundary as a GeoJSON Feature or FeatureCollection
        restrictions: Restriction overlays keyed by source name, each a GeoJSON
                      FeatureCollection (e.g. {"flood": {...}, "biodiversity": {...}})
        use_remote_sources: Query the profile's ArcGIS sources instead of
                            using ``restrictions``
        profile: Settings profile name (use devarea_list_sources to see options)
        settings_override: Optional settings overrides (merge patch)
        include_statistics: Include run statistics in the response

    Returns:
        Dict with job_id, the developable area FeatureCollection, per-source
        restricted_areas and fetched counts, and degradation details
    """
    try:
        settings = _settings(profile, settings_override)

        if restrictions is not None:
            sources = [
                settings.get_source(name) or RestrictionSource(name=name)
                for name in restrictions
            ]
            provider = StaticRestrictionSourceProvider(restrictions, sources=sources)
        elif use_remote_sources:
            provider = ArcGISRestrictionSourceProvider.from_settings(settings)
        else:
            return {
                "isError": True,
                "error": "No restriction overlays supplied",
                "suggestion": "Pass restrictions keyed by source name or set use_remote_sources=true",
            }

        result = await generate_developable_area(boundary, provider, settings=settings)
        job_id = result.statistics.get("job_id", "unknown")
        _results[job_id] = result

        return {
            "job_id": job_id,
            "status": "completed",
            "is_empty": result.is_empty,
            "degraded": result.degraded,
            "restricted_areas": result.restricted_areas,
            "total_subtracted": result.total_subtracted,
            "fetched": result.fetched,
            "degradations": result.degradations,
            "developable_area": result_to_feature_collection(
                result, include_statistics=include_statistics
            ),
        }

    except FileNotFoundError as e:
        return {
            "isError": True,
            "error": str(e),
            "suggestion": "Use devarea_list_sources to see available profiles",
        }
    except DevelopableAreaError as e:
        logger.warning(f"Generation failed: {e}")
        return {
            "isError": True,
            "error": str(e),
            "error_type": type(e).__name__,
            "suggestion": "Check boundary is a GeoJSON Polygon or MultiPolygon with at least 3 distinct vertices",
        }
    except Exception as e:
        logger.exception("Generation failed")
        return {
            "isError": True,
            "error": str(e),
            "suggestion": "Check boundary and restrictions are valid GeoJSON",
        }


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,  # Tier A may call the geometry service
    }
)
async def devarea_difference(
    minuend: dict[str, Any],
    subtrahend: dict[str, Any],
    strict: bool = False,
    profile: str | None = None,
    settings_override: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Subtract one polygon from another with tiered fallbacks.

    Args:
        minuend: GeoJSON polygon feature to subtract from
        subtrahend: GeoJSON polygon feature to subtract
        strict: Report an error instead of returning the minuend when every
                tier fails
        profile: Settings profile name
        settings_override: Optional settings overrides (merge patch)

    Returns:
        Dict with the resulting feature, the tier used and whether the
        difference was applied
    """
    try:
        settings = _settings(profile, settings_override)
        engine = DifferenceEngine(settings)
        result = await engine.difference(
            normalize_feature(minuend),
            normalize_feature(subtrahend),
            strict=strict,
        )
        return {
            "feature": result.to_geojson(),
            "tier": result.tags.get("differenceTier"),
            "applied": bool(result.tags.get("differenceApplied")),
            "is_empty": result.is_empty,
        }
    except DifferenceDegraded as e:
        return {
            "isError": True,
            "error": str(e),
            "reasons": e.reasons,
            "suggestion": "Run devarea_repair on both operands or retry without strict",
        }
    except DevelopableAreaError as e:
        return {
            "isError": True,
            "error": str(e),
            "error_type": type(e).__name__,
            "suggestion": "Check both operands are GeoJSON Polygon or MultiPolygon features",
        }
    except Exception as e:
        logger.exception("Difference failed")
        return {
            "isError": True,
            "error": str(e),
        }


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def devarea_repair(
    feature: dict[str, Any],
    profile: str | None = None,
    settings_override: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Normalize and repair a polygon feature.

    Closes open rings, then runs the repair ladder (buffer, vertex cleanup,
    simplification, convex hull) until the polygon is valid.

    Args:
        feature: GeoJSON polygon feature or geometry
        profile: Settings profile name
        settings_override: Optional settings overrides (merge patch)

    Returns:
        Dict with the repaired feature, validity before repair and the
        strategy that succeeded
    """
    try:
        settings = _settings(profile, settings_override)
        normalized = normalize_feature(feature)
        was_valid = is_valid_feature(normalized)
        repaired = repair_feature(normalized, settings)
        return {
            "feature": repaired.to_geojson(),
            "was_valid": was_valid,
            "repaired": bool(repaired.tags.get("repaired")),
            "strategy": repaired.tags.get("repairStrategy"),
            "approximate": bool(repaired.tags.get("approximate")),
            "vertex_count": count_vertices(repaired),
        }
    except DevelopableAreaError as e:
        return {
            "isError": True,
            "error": str(e),
            "error_type": type(e).__name__,
            "attempts": getattr(e, "attempts", []),
            "suggestion": "The geometry is beyond automatic repair; redraw the polygon",
        }
    except Exception as e:
        logger.exception("Repair failed")
        return {
            "isError": True,
            "error": str(e),
        }


@mcp.tool(
    annotations={
        "readOnlyHint": False,  # Writes into the layer store
        "destructiveHint": True,  # Replaces the target layer geometry
        "idempotentHint": False,  # Refreshes the generated timestamp
        "openWorldHint": False,
    }
)
async def devarea_sync_layer(
    job_id: str,
    layer_id: str | int,
    raw_sections: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Write a generated developable area into a drawing layer.

    Args:
        job_id: Job ID from devarea_generate
        layer_id: ``properties.id`` of the target layer feature
        raw_sections: Optional layer FeatureCollection to load into the store
                      before writing

    Returns:
        Dict with the method used, the written feature and the updated
        layer collection
    """
    result = _results.get(job_id)
    if result is None:
        return {
            "isError": True,
            "error": f"Job {job_id} not found",
            "suggestion": "Use devarea_generate to create a job first",
        }

    try:
        if raw_sections is not None:
            await _layer_store.set("rawSections", raw_sections)
        outcome = await sync_developable_area(_layer_store, layer_id, result)
        return {
            "success": True,
            **outcome,
            "raw_sections": await _layer_store.get("rawSections"),
        }
    except SyncFailure as e:
        return {
            "isError": True,
            "error": str(e),
            "primary_error": e.primary_error,
            "fallback_error": e.fallback_error,
            "suggestion": "Check the layer id exists in raw_sections and the result is not empty",
        }


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def devarea_list_sources(
    profile: str | None = None,
) -> dict[str, Any]:
    """List settings profiles and the restriction sources of one profile.

    Args:
        profile: Profile whose sources are listed (default profile when omitted)

    Returns:
        Dict with profiles array of {name, description} and the selected
        profile's sources
    """
    name = profile or default_profile_name()
    try:
        settings = load_profile(name)
        return {
            "profiles": list_profiles(),
            "profile": name,
            "sources": [s.model_dump() for s in settings.restriction_sources],
            "remote_geometry_service": settings.remote.enabled,
        }
    except FileNotFoundError:
        return {
            "isError": True,
            "error": f"Profile '{name}' not found",
            "profiles": list_profiles(),
            "suggestion": "Pick one of the listed profiles",
        }
    except Exception as e:
        logger.exception(f"Failed to load profile '{name}'")
        return {
            "isError": True,
            "error": str(e),
            "suggestion": "Check profile YAML syntax",
        }


def run_server():
    """Run the MCP server (stdio transport)."""
    mcp.run()


def main():
    """Main entry point."""
    run_server()


if __name__ == "__main__":
    main()
