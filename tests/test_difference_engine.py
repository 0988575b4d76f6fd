"""Tests for the multi-tier difference engine.

Tier A runs against an in-process fake geometry service so the tests
stay offline. The HTTP client itself is covered in test_services.py.
"""

import pytest
from shapely.geometry import Point, box, shape

from developable_area.difference.approximate import approximate_difference, boundary_crossings
from developable_area.difference.engine import (
    TIER_APPROXIMATE,
    TIER_LOCAL,
    TIER_REMOTE,
    DifferenceEngine,
)
from developable_area.difference.local import degenerate_reason, inverse_difference, local_difference
from developable_area.errors import DifferenceDegraded, GeometryServiceError
from developable_area.geometry.esri import esri_rings_to_geometry, geometry_to_esri_rings
from developable_area.geometry.normalize import normalize_feature
from developable_area.geometry.polygon_ops import shape_to_geometry
from developable_area.geometry.repair import is_valid_feature
from developable_area.models.feature import PolygonFeature
from developable_area.models.settings import EngineSettings
from developable_area.services.geometry_service import ArcGISGeometryService


def feature_from_shape(geom):
    return normalize_feature(shape_to_geometry(geom))


def area_of(feature):
    if feature.is_empty:
        return 0.0
    return shape(feature.geometry).area


class FakeGeometryService:
    """Computes differences locally and records every request."""

    def __init__(self, rings=None, error=None):
        self.rings = rings
        self.error = error
        self.calls = []

    async def difference(self, minuend_rings, subtrahend_rings):
        self.calls.append((minuend_rings, subtrahend_rings))
        if self.error is not None:
            raise self.error
        if self.rings is not None:
            return self.rings
        result = esri_rings_to_geometry(minuend_rings).difference(
            esri_rings_to_geometry(subtrahend_rings)
        )
        return geometry_to_esri_rings(result)


class FailingTiersEngine(DifferenceEngine):
    """Engine whose local and approximate tiers never produce a result."""

    async def _local(self, minuend, subtrahend):
        return None

    async def _approximate(self, minuend, subtrahend):
        raise GeometryServiceError("approximation unavailable")


@pytest.fixture
def square():
    return feature_from_shape(box(0, 0, 10, 10))


@pytest.fixture
def engine():
    return DifferenceEngine(EngineSettings())


class TestDifferenceProperties:
    """Basic algebra of the difference."""

    @pytest.mark.asyncio
    async def test_disjoint_subtrahend_leaves_minuend(self, engine, square):
        result = await engine.difference(square, feature_from_shape(box(20, 20, 30, 30)))

        assert area_of(result) == pytest.approx(100.0)
        assert result.tags["differenceApplied"] is True

    @pytest.mark.asyncio
    async def test_self_difference_is_empty(self, engine, square):
        result = await engine.difference(square, square)

        assert result.is_empty
        assert result.tags["isEmpty"] is True
        assert result.tags["differenceTier"] == TIER_LOCAL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cutter", [
        box(2, 2, 4, 4),
        box(-5, -5, 5, 5),
        box(9, 0, 20, 10),
        Point(5, 5).buffer(3),
    ])
    async def test_area_never_grows(self, engine, square, cutter):
        result = await engine.difference(square, feature_from_shape(cutter))

        assert area_of(result) <= 100.0 + 1e-9
        assert is_valid_feature(result)

    @pytest.mark.asyncio
    async def test_empty_operand_returns_minuend(self, engine, square):
        empty = square.as_empty()

        assert await engine.difference(square, empty) is square
        assert await engine.difference(empty, square) is empty

    @pytest.mark.asyncio
    async def test_properties_survive(self, engine):
        minuend = normalize_feature({
            "type": "Feature",
            "geometry": shape_to_geometry(box(0, 0, 10, 10)),
            "properties": {"id": 7, "name": "Developable Area"},
        })
        result = await engine.difference(minuend, feature_from_shape(box(2, 2, 4, 4)))
        assert result.properties == {"id": 7, "name": "Developable Area"}


class TestLocalTier:
    """Tier B with Shapely."""

    @pytest.mark.asyncio
    async def test_hole_is_cut(self, engine, square):
        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))
        geom = shape(result.geometry)

        assert result.tags["differenceTier"] == TIER_LOCAL
        assert geom.area == pytest.approx(96.0)
        assert len(geom.interiors) == 1

    @pytest.mark.asyncio
    async def test_split_produces_multipolygon(self, engine, square):
        result = await engine.difference(square, feature_from_shape(box(4, -1, 6, 11)))

        assert result.geometry_type == "MultiPolygon"
        assert area_of(result) == pytest.approx(80.0)

    @pytest.mark.asyncio
    async def test_zero_area_subtrahend_uses_inverse_rewrite(self, engine, square):
        sliver = PolygonFeature(geometry={
            "type": "Polygon",
            "coordinates": [[[2.0, 2.0], [4.0, 4.0], [6.0, 6.0], [2.0, 2.0]]],
        })

        result = await engine.difference(square, sliver)

        assert result.tags["inverseRewrite"] is True
        assert "zero area" in result.tags["degenerateReason"]
        assert area_of(result) == pytest.approx(100.0)

    def test_short_ring_is_degenerate(self, square):
        short = PolygonFeature(geometry={
            "type": "Polygon",
            "coordinates": [[[2.0, 2.0], [4.0, 2.0], [2.0, 2.0]]],
        })
        assert degenerate_reason(square, short, EngineSettings()) == "subtrahend has a ring with 3 points"

    def test_well_formed_pair_is_not_degenerate(self, square):
        assert degenerate_reason(square, feature_from_shape(box(1, 1, 2, 2)), EngineSettings()) is None

    def test_inverse_rewrite_matches_direct_difference(self):
        minuend = box(0, 0, 10, 10)
        subtrahend = box(2, 2, 4, 4)

        rewritten = inverse_difference(minuend, subtrahend, EngineSettings())

        assert rewritten.symmetric_difference(minuend.difference(subtrahend)).area == pytest.approx(0.0)

    def test_covered_minuend_becomes_empty(self, square):
        result = local_difference(square, feature_from_shape(box(-1, -1, 11, 11)), EngineSettings())
        assert result.is_empty


class TestRemoteTier:
    """Tier A through a geometry service."""

    @pytest.mark.asyncio
    async def test_service_result_is_used(self, square):
        service = FakeGeometryService()
        engine = DifferenceEngine(EngineSettings(), geometry_service=service)

        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.tags["differenceTier"] == TIER_REMOTE
        assert area_of(result) == pytest.approx(96.0)
        assert len(service.calls) == 1

    @pytest.mark.asyncio
    async def test_service_error_falls_back_to_local(self, square):
        service = FakeGeometryService(error=GeometryServiceError("HTTP 500"))
        engine = DifferenceEngine(EngineSettings(), geometry_service=service)

        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.tags["differenceTier"] == TIER_LOCAL
        assert area_of(result) == pytest.approx(96.0)

    @pytest.mark.asyncio
    async def test_empty_ring_set_falls_back_to_local(self, square):
        engine = DifferenceEngine(EngineSettings(), geometry_service=FakeGeometryService(rings=[]))

        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.tags["differenceTier"] == TIER_LOCAL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rings", [
        [[[1.0]]],
        [[["a", 2.0], [3.0, 4.0]]],
        [None],
        [[None, None, None, None]],
    ])
    async def test_malformed_rings_fall_back_to_local(self, square, rings):
        engine = DifferenceEngine(EngineSettings(), geometry_service=FakeGeometryService(rings=rings))

        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.tags["differenceTier"] == TIER_LOCAL
        assert area_of(result) == pytest.approx(96.0)

    @pytest.mark.asyncio
    async def test_result_larger_than_minuend_is_rejected(self, square):
        bigger = geometry_to_esri_rings(box(0, 0, 20, 20))
        engine = DifferenceEngine(EngineSettings(), geometry_service=FakeGeometryService(rings=bigger))

        result = await engine.difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.tags["differenceTier"] == TIER_LOCAL
        assert area_of(result) == pytest.approx(96.0)

    @pytest.mark.asyncio
    async def test_large_operands_are_simplified_before_sending(self):
        service = FakeGeometryService()
        engine = DifferenceEngine(EngineSettings(), geometry_service=service)
        circle = feature_from_shape(Point(5, 5).buffer(3, quad_segs=500))

        result = await engine.difference(circle, feature_from_shape(box(4, 4, 6, 6)))

        minuend_rings, subtrahend_rings = service.calls[0]
        assert sum(len(r) for r in minuend_rings) <= 50
        assert sum(len(r) for r in subtrahend_rings) <= 50
        assert result.tags["differenceTier"] == TIER_REMOTE
        assert result.tags["simplified"] is True

    def test_remote_settings_build_arcgis_client(self):
        settings = EngineSettings(remote={"enabled": True, "url": "https://example.test/Geometry"})
        engine = DifferenceEngine(settings)

        assert isinstance(engine.geometry_service, ArcGISGeometryService)
        assert engine.geometry_service.url == "https://example.test/Geometry"

    def test_remote_tier_is_not_configured_by_default(self, engine):
        names = [name for name, tier in engine.tiers() if tier is not None]
        assert names == [TIER_LOCAL, TIER_APPROXIMATE]


class TestApproximateTier:
    """Tier C vertex filtering."""

    def test_half_square(self, square):
        result = approximate_difference(square, feature_from_shape(box(5, -1, 11, 11)), EngineSettings())

        assert result.tags["approximate"] is True
        assert area_of(result) == pytest.approx(50.0)

    def test_fully_covered_minuend_is_empty(self, square):
        result = approximate_difference(square, feature_from_shape(box(-1, -1, 11, 11)), EngineSettings())

        assert result.is_empty
        assert result.tags["approximate"] is True

    def test_boundary_crossings(self):
        crossings = boundary_crossings(box(0, 0, 10, 10), box(5, -1, 11, 11))
        assert sorted(crossings) == [(5.0, 0.0), (5.0, 10.0)]

    @pytest.mark.asyncio
    async def test_engine_uses_approximation_when_local_fails(self, square):
        class NoLocalEngine(DifferenceEngine):
            async def _local(self, minuend, subtrahend):
                return None

        result = await NoLocalEngine().difference(square, feature_from_shape(box(5, -1, 11, 11)))

        assert result.tags["differenceTier"] == TIER_APPROXIMATE
        assert area_of(result) == pytest.approx(50.0)


class TestDegradedDifference:
    """Every tier failing."""

    @pytest.mark.asyncio
    async def test_minuend_returned_with_failures(self, square):
        result = await FailingTiersEngine().difference(square, feature_from_shape(box(2, 2, 4, 4)))

        assert result.geometry == square.geometry
        assert result.tags["differenceApplied"] is False
        assert result.tags["differenceDegraded"] is True
        failures = result.tags["differenceFailures"]
        assert failures[TIER_REMOTE] == "not configured"
        assert failures[TIER_LOCAL] == "no usable result"
        assert "approximation unavailable" in failures[TIER_APPROXIMATE]

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self, square):
        with pytest.raises(DifferenceDegraded) as exc_info:
            await FailingTiersEngine().difference(
                square, feature_from_shape(box(2, 2, 4, 4)), strict=True
            )

        assert set(exc_info.value.reasons) == {TIER_REMOTE, TIER_LOCAL, TIER_APPROXIMATE}

    @pytest.mark.asyncio
    async def test_later_success_clears_degraded_tags(self, engine, square):
        degraded = await FailingTiersEngine().difference(square, feature_from_shape(box(2, 2, 4, 4)))

        result = await engine.difference(degraded, feature_from_shape(box(6, 6, 8, 8)))

        assert result.tags["differenceApplied"] is True
        assert result.tags["differenceDegraded"] is False
        assert result.tags["differenceFailures"] == {}
        assert area_of(result) == pytest.approx(96.0)
