"""Developable area generation pipeline.

Orchestrates the full build from parcel boundary to developable area:
1. Normalize and repair the parcel boundary
2. Query every restriction source over a padded envelope
3. Subtract each intersecting restriction feature in turn
4. Repair the accumulated polygon and drop slivers
5. Package the result with per-source counts
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .difference.engine import DifferenceEngine
from .errors import BuildCancelled, NormalizationError, RepairFailure, RestrictionQueryError
from .geometry.normalize import normalize_feature, normalize_restriction
from .geometry.polygon_ops import (
    bounds_intersect,
    combine_parts,
    feature_to_shape,
    geometry_area,
    padded_bounds,
    polygonal_parts,
    shape_to_geometry,
)
from .geometry.reduce import clip_to_buffer, count_vertices, simplify_if_large
from .geometry.repair import repair_feature
from .models.feature import DevelopableAreaResult, PolygonFeature
from .models.settings import EngineSettings
from .models.sources import RestrictionSource
from .services.sources import RestrictionSourceProvider

logger = logging.getLogger(__name__)


# Progress callback type
ProgressCallback = Callable[[str, float], None]
CancelCheck = Callable[[], bool]


class BuildState(str, Enum):
    """Area builder states."""

    INITIALIZING = "Initializing"
    NORMALIZING_BOUNDARY = "NormalizingBoundary"
    QUERYING_SOURCE = "QueryingSource"
    SUBTRACTING_SOURCE = "SubtractingSource"
    FINALIZING = "Finalizing"
    DONE = "Done"
    ERROR_TERMINAL = "ErrorTerminal"


@dataclass
class BuildContext:
    """Mutable state of one developable area computation."""

    job_id: str
    settings: EngineSettings
    boundary: Optional[PolygonFeature] = None
    accumulated: Optional[PolygonFeature] = None
    state: BuildState = BuildState.INITIALIZING
    current_source: Optional[str] = None
    restricted_areas: Dict[str, int] = field(default_factory=dict)
    fetched: Dict[str, int] = field(default_factory=dict)
    degraded: bool = False
    degradations: List[str] = field(default_factory=list)
    transitions: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    def transition(self, state: BuildState, source: Optional[str] = None) -> None:
        self.state = state
        self.current_source = source
        label = f"{state.value}({source})" if source else state.value
        self.transitions.append(label)
        logger.debug(f"[{self.job_id}] -> {label}")

    def bump(self, key: str, amount: int = 1) -> None:
        self.stats[key] = self.stats.get(key, 0) + amount


async def generate_developable_area(
    boundary: Any,
    provider: RestrictionSourceProvider,
    settings: Optional[EngineSettings] = None,
    engine: Optional[DifferenceEngine] = None,
    progress_callback: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> DevelopableAreaResult:
    """Main pipeline: subtract every restriction overlay from a parcel.

    Args:
        boundary: GeoJSON Feature/FeatureCollection of the parcel boundary
        provider: Restriction source provider
        settings: Engine settings (defaults used when None)
        engine: Difference engine (built from settings when None)
        progress_callback: Optional callback for progress updates (message, percent)
        should_cancel: Optional check polled between restriction features

    Returns:
        DevelopableAreaResult

    Raises:
        NormalizationError: If the boundary cannot be normalized
        RepairFailure: If the boundary cannot be repaired
        BuildCancelled: If ``should_cancel`` returned True
    """
    settings = settings or EngineSettings()
    engine = engine or DifferenceEngine(settings)
    job_id = str(uuid.uuid4())[:8]
    ctx = BuildContext(job_id=job_id, settings=settings)
    ctx.stats["job_id"] = job_id
    start_time = time.time()

    def report_progress(message: str, percent: float):
        if progress_callback:
            progress_callback(message, percent)
        logger.info(f"[{job_id}] {message} ({percent:.0f}%)")

    # PHASE 1: Boundary
    report_progress("Normalizing parcel boundary...", 5)
    ctx.transition(BuildState.NORMALIZING_BOUNDARY)
    try:
        ctx.boundary = repair_feature(normalize_feature(boundary), settings)
    except (NormalizationError, RepairFailure) as e:
        ctx.transition(BuildState.ERROR_TERMINAL)
        logger.error(f"[{job_id}] Parcel boundary rejected: {e}")
        raise
    ctx.accumulated = ctx.boundary

    boundary_shape = feature_to_shape(ctx.boundary)
    envelope = padded_bounds(boundary_shape, settings.build.envelope_padding)
    ctx.stats["boundary_area"] = geometry_area(boundary_shape)
    ctx.stats["envelope"] = list(envelope)

    # PHASE 2: Restriction sources
    sources = provider.sources()
    ctx.stats["sources"] = [s.name for s in sources]
    for index, source in enumerate(sources):
        percent = 10 + 80 * index / max(len(sources), 1)
        ctx.restricted_areas.setdefault(source.name, 0)
        ctx.fetched.setdefault(source.name, 0)

        report_progress(f"Querying {source.name}...", percent)
        ctx.transition(BuildState.QUERYING_SOURCE, source.name)
        try:
            features = list(await provider.query(source, envelope))
        except (RestrictionQueryError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"[{job_id}] {source.name} query failed, skipping source: {e}")
            ctx.degradations.append(f"{source.name}: query failed: {e}")
            ctx.bump("sources_failed")
            continue
        except Exception as e:
            logger.warning(f"[{job_id}] {source.name} provider raised {type(e).__name__}, skipping source: {e}")
            ctx.degradations.append(f"{source.name}: query failed: {type(e).__name__}: {e}")
            ctx.bump("sources_failed")
            continue

        ctx.fetched[source.name] = len(features)
        ctx.transition(BuildState.SUBTRACTING_SOURCE, source.name)

        # A source that fails mid-way is rolled back to zero effect
        accumulated_before = ctx.accumulated
        try:
            await _subtract_source(ctx, source, features, engine, should_cancel)
        except BuildCancelled:
            raise
        except Exception as e:
            logger.warning(f"[{job_id}] Subtracting {source.name} failed, source ignored: {e}")
            ctx.accumulated = accumulated_before
            ctx.restricted_areas[source.name] = 0
            ctx.degradations.append(f"{source.name}: subtraction failed: {type(e).__name__}: {e}")
            ctx.bump("sources_failed")
            continue

        logger.info(
            f"[{job_id}] {source.name}: {ctx.restricted_areas[source.name]} of "
            f"{len(features)} features subtracted"
        )

    # PHASE 3: Finalize
    report_progress("Finalizing developable area...", 92)
    ctx.transition(BuildState.FINALIZING)
    final = _finalize(ctx)

    ctx.stats["final_area"] = geometry_area(feature_to_shape(final))
    ctx.stats["final_vertex_count"] = count_vertices(final)
    ctx.stats["elapsed_s"] = round(time.time() - start_time, 3)
    ctx.transition(BuildState.DONE)
    ctx.stats["states"] = list(ctx.transitions)

    report_progress("Complete!", 100)

    return DevelopableAreaResult(
        feature=final,
        generated_at=datetime.now(timezone.utc),
        restricted_areas=dict(ctx.restricted_areas),
        fetched=dict(ctx.fetched),
        degraded=ctx.degraded,
        degradations=list(ctx.degradations),
        statistics=ctx.stats,
    )


async def _subtract_source(
    ctx: BuildContext,
    source: RestrictionSource,
    features: List[dict],
    engine: DifferenceEngine,
    should_cancel: Optional[CancelCheck],
) -> None:
    """Subtract one source's features from the accumulated polygon in order."""
    settings = ctx.settings
    complexity = settings.complexity
    line_buffer = settings.km_to_units(source.line_buffer_km) if source.line_buffer_km else None

    for position, raw in enumerate(features):
        if should_cancel and should_cancel():
            logger.info(f"[{ctx.job_id}] Cancelled during {source.name}")
            raise BuildCancelled(f"Build {ctx.job_id} cancelled during {source.name}")

        if ctx.accumulated.is_empty:
            remaining = len(features) - position
            logger.debug(f"[{ctx.job_id}] Nothing left to subtract from, skipping {remaining} features")
            ctx.bump("features_skipped_empty", remaining)
            return

        if not isinstance(raw, dict) or not raw.get("geometry"):
            ctx.bump("features_without_geometry")
            continue

        try:
            restriction = normalize_restriction(raw, line_buffer)
        except NormalizationError as e:
            logger.debug(f"[{ctx.job_id}] Skipping unreadable {source.name} feature: {e}")
            ctx.bump("features_invalid")
            continue

        vertex_count = count_vertices(restriction)
        if vertex_count > complexity.simplify_threshold:
            restriction = simplify_if_large(restriction, complexity.simplify_threshold, settings)
            restriction = clip_to_buffer(restriction, ctx.accumulated, complexity.clip_buffer_km, settings)
            ctx.bump("features_reduced")
            logger.debug(
                f"[{ctx.job_id}] Reduced {source.name} feature from {vertex_count} "
                f"to {count_vertices(restriction)} vertices"
            )

        accumulated_shape = feature_to_shape(ctx.accumulated)
        if not bounds_intersect(feature_to_shape(restriction).bounds, accumulated_shape.bounds):
            ctx.bump("features_disjoint")
            continue

        before = geometry_area(accumulated_shape)
        result = await engine.difference(ctx.accumulated, restriction)
        ctx.bump("differences_run")

        if result.tags.get("differenceApplied") is False and result.tags.get("differenceDegraded"):
            ctx.bump("differences_degraded")
            ctx.degradations.append(
                f"{source.name}: difference degraded: {result.tags.get('differenceFailures')}"
            )

        if result.tags.get("differenceApplied"):
            after = geometry_area(feature_to_shape(result))
            if result.is_empty or after < before - settings.tolerances.area_epsilon:
                ctx.restricted_areas[source.name] += 1

        ctx.accumulated = result


def _finalize(ctx: BuildContext) -> PolygonFeature:
    """Repair the accumulated polygon, falling back to the parcel boundary."""
    accumulated = ctx.accumulated
    if accumulated.is_empty:
        logger.info(f"[{ctx.job_id}] Developable area is empty")
        return accumulated

    try:
        final = repair_feature(accumulated, ctx.settings)
    except RepairFailure as e:
        logger.warning(f"[{ctx.job_id}] Final repair failed, using parcel boundary: {e}")
        ctx.degraded = True
        ctx.degradations.append(f"finalize: {e}")
        return ctx.boundary.with_tags(degraded=True)

    min_part_area = ctx.settings.build.min_part_area
    if min_part_area > 0:
        parts = polygonal_parts(feature_to_shape(final))
        kept = [p for p in parts if p.area >= min_part_area]
        dropped = len(parts) - len(kept)
        if dropped:
            logger.debug(f"[{ctx.job_id}] Dropping {dropped} parts below {min_part_area}")
            if not kept:
                return final.as_empty(smallPartsDropped=dropped)
            combined = combine_parts(kept)
            final = final.with_geometry(shape_to_geometry(combined), smallPartsDropped=dropped)

    ctx.stats["final_part_count"] = len(polygonal_parts(feature_to_shape(final)))
    return final
