"""Multi-tier robust polygon difference.

Tiers are strictly sequential fallbacks:

- A: remote geometry service (skipped when none is configured)
- B: local exact difference with Shapely
- C: vertex-filtering approximation

The first tier whose output exists, is valid (or explicitly empty) and does
not grow the minuend is returned. When every tier fails the minuend comes
back unchanged, tagged ``differenceDegraded``.
"""

import logging
from typing import Awaitable, Callable, Optional

from shapely.errors import GEOSException
from shapely.validation import make_valid

from ..errors import DevelopableAreaError, DifferenceDegraded, RepairFailure
from ..geometry.polygon_ops import feature_to_shape, geometry_area, is_valid_polygon
from ..geometry.repair import repair_feature
from ..models.feature import PolygonFeature
from ..models.settings import EngineSettings
from ..services.geometry_service import ArcGISGeometryService, GeometryService
from .approximate import approximate_difference
from .local import lenient_shape, local_difference
from .remote import remote_difference

logger = logging.getLogger(__name__)

Tier = Callable[[PolygonFeature, PolygonFeature], Awaitable[Optional[PolygonFeature]]]

TIER_REMOTE = "A"
TIER_LOCAL = "B"
TIER_APPROXIMATE = "C"


class DifferenceEngine:
    """Robust ``minuend - subtrahend`` for GeoJSON polygon features.

    Args:
        settings: Engine settings (defaults used when None)
        geometry_service: Remote service for Tier A. When None and
            ``settings.remote.enabled`` is set, an ArcGIS client is built
            from the settings.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        geometry_service: GeometryService | None = None,
    ):
        self.settings = settings or EngineSettings()
        if geometry_service is None and self.settings.remote.enabled:
            geometry_service = ArcGISGeometryService.from_settings(self.settings.remote)
        self.geometry_service = geometry_service

    def tiers(self) -> list[tuple[str, Optional[Tier]]]:
        """Ordered (name, tier) pairs; a None tier is not configured."""
        remote = self._remote if self.geometry_service is not None else None
        return [
            (TIER_REMOTE, remote),
            (TIER_LOCAL, self._local),
            (TIER_APPROXIMATE, self._approximate),
        ]

    async def difference(
        self,
        minuend: PolygonFeature,
        subtrahend: PolygonFeature,
        strict: bool = False,
    ) -> PolygonFeature:
        """Subtract ``subtrahend`` from ``minuend``.

        Args:
            minuend: Feature to subtract from
            subtrahend: Feature to subtract
            strict: Raise instead of returning a degraded result

        Returns:
            Result tagged ``differenceTier`` and ``differenceApplied``. When
            every tier fails, the minuend tagged ``differenceApplied: false``,
            ``differenceDegraded: true`` and ``differenceFailures``.

        Raises:
            DifferenceDegraded: Only in strict mode, when every tier failed
        """
        if minuend.is_empty or subtrahend.is_empty:
            return minuend

        minuend_area = self._reference_area(minuend)
        reasons: dict[str, str] = {}

        for name, tier in self.tiers():
            if tier is None:
                reasons[name] = "not configured"
                continue

            try:
                candidate = await tier(minuend, subtrahend)
            except (DevelopableAreaError, GEOSException, ValueError) as e:
                logger.debug(f"Tier {name} failed: {e}")
                reasons[name] = str(e) or type(e).__name__
                continue

            rejection = self._rejection_reason(candidate, minuend_area)
            if rejection:
                logger.debug(f"Tier {name} result rejected: {rejection}")
                reasons[name] = rejection
                continue

            if name != TIER_REMOTE and self.geometry_service is not None:
                logger.info(f"Difference fell back to tier {name}: A failed with {reasons[TIER_REMOTE]}")
            tags = {"differenceTier": name, "differenceApplied": True}
            if candidate.tags.get("differenceDegraded"):
                # Degradation tags carried over from an earlier difference no longer apply
                tags.update(differenceDegraded=False, differenceFailures={})
            return candidate.with_tags(**tags)

        logger.warning(f"All difference tiers failed: {reasons}")
        if strict:
            raise DifferenceDegraded("All difference tiers failed", reasons=reasons)
        return minuend.with_tags(
            differenceApplied=False,
            differenceDegraded=True,
            differenceFailures=reasons,
        )

    def _reference_area(self, minuend: PolygonFeature) -> float:
        """Area a result may not exceed: the repaired minuend, else its valid part."""
        try:
            return geometry_area(feature_to_shape(repair_feature(minuend, self.settings)))
        except RepairFailure:
            return geometry_area(make_valid(lenient_shape(minuend)))

    def _rejection_reason(self, candidate: PolygonFeature | None, minuend_area: float) -> str | None:
        if candidate is None:
            return "no usable result"
        if candidate.is_empty:
            return None

        geom = feature_to_shape(candidate)
        if not is_valid_polygon(geom):
            return "invalid result"

        slack = max(self.settings.tolerances.area_epsilon, minuend_area * 1e-9)
        area = geometry_area(geom)
        if area > minuend_area + slack:
            return f"result area {area:.6g} exceeds minuend area {minuend_area:.6g}"
        return None

    async def _remote(self, minuend: PolygonFeature, subtrahend: PolygonFeature) -> PolygonFeature | None:
        return await remote_difference(minuend, subtrahend, self.geometry_service, self.settings)

    async def _local(self, minuend: PolygonFeature, subtrahend: PolygonFeature) -> PolygonFeature | None:
        return local_difference(minuend, subtrahend, self.settings)

    async def _approximate(
        self,
        minuend: PolygonFeature,
        subtrahend: PolygonFeature,
    ) -> PolygonFeature | None:
        return approximate_difference(minuend, subtrahend, self.settings)
