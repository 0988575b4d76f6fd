"""Integration tests for the MCP tool functions.

Tools are called directly as coroutines, the way the MCP runtime invokes
them, with in-memory restriction overlays.
"""

import pytest

from developable_area.server import (
    devarea_difference,
    devarea_generate,
    devarea_list_sources,
    devarea_repair,
    devarea_sync_layer,
)


# ============================================================================
# Sample Site Data
# ============================================================================

PARCEL = {
    "type": "Feature",
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]],
    },
    "properties": {},
}

# Interior flood extent (2 x 2)
FLOOD = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[2, 2], [4, 2], [4, 4], [2, 4], [2, 2]]],
            },
            "properties": {"FLOOD_TYPE": "1AEP"},
        }
    ],
}

RAW_SECTIONS = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": PARCEL["geometry"],
            "properties": {"id": "devarea-1", "name": "Developable Area"},
        }
    ],
}

BOWTIE = {
    "type": "Polygon",
    "coordinates": [[[0, 0], [10, 10], [10, 0], [0, 10], [0, 0]]],
}


# ============================================================================
# Generation and Sync
# ============================================================================


class TestGenerateTool:
    """devarea_generate"""

    @pytest.mark.asyncio
    async def test_generate_with_supplied_restrictions(self):
        response = await devarea_generate(PARCEL, restrictions={"flood": FLOOD})

        assert "isError" not in response
        assert response["restricted_areas"] == {"flood": 1}
        assert response["is_empty"] is False
        feature = response["developable_area"]["features"][0]
        assert feature["properties"]["generatedDevelopableArea"] is True
        assert len(feature["geometry"]["coordinates"]) == 2  # shell and hole

    @pytest.mark.asyncio
    async def test_generate_without_restrictions_is_an_error(self):
        response = await devarea_generate(PARCEL)

        assert response["isError"] is True
        assert "suggestion" in response

    @pytest.mark.asyncio
    async def test_bad_boundary_is_an_error(self):
        response = await devarea_generate({"type": "Feature", "geometry": None}, restrictions={})

        assert response["isError"] is True
        assert response["error_type"] == "NormalizationError"

    @pytest.mark.asyncio
    async def test_unknown_profile_is_an_error(self):
        response = await devarea_generate(PARCEL, restrictions={}, profile="nope")
        assert response["isError"] is True

    @pytest.mark.asyncio
    async def test_generate_then_sync(self):
        generated = await devarea_generate(PARCEL, restrictions={"flood": FLOOD})

        synced = await devarea_sync_layer(generated["job_id"], "devarea-1", raw_sections=RAW_SECTIONS)

        assert synced["success"] is True
        assert synced["method"] == "updateRawSection"
        written = synced["raw_sections"]["features"][0]
        assert written["properties"]["name"] == "Developable Area"
        assert written["properties"]["restrictedAreas"] == {"flood": 1}

    @pytest.mark.asyncio
    async def test_sync_unknown_job(self):
        response = await devarea_sync_layer("missing", "devarea-1")
        assert response["isError"] is True

    @pytest.mark.asyncio
    async def test_sync_unknown_layer(self):
        generated = await devarea_generate(PARCEL, restrictions={"flood": FLOOD})

        response = await devarea_sync_layer(generated["job_id"], "other", raw_sections=RAW_SECTIONS)

        assert response["isError"] is True
        assert "not found" in response["error"]


# ============================================================================
# Single Geometry Operations
# ============================================================================


class TestGeometryTools:
    """devarea_difference and devarea_repair"""

    @pytest.mark.asyncio
    async def test_difference(self):
        response = await devarea_difference(PARCEL, FLOOD)

        assert response["tier"] == "B"
        assert response["applied"] is True
        assert response["is_empty"] is False

    @pytest.mark.asyncio
    async def test_difference_to_empty(self):
        response = await devarea_difference(PARCEL, PARCEL)
        assert response["is_empty"] is True

    @pytest.mark.asyncio
    async def test_repair_bowtie(self):
        response = await devarea_repair(BOWTIE)

        assert response["was_valid"] is False
        assert response["repaired"] is True
        assert response["strategy"] in {"buffer", "clean_coords", "simplify", "convex_hull"}

    @pytest.mark.asyncio
    async def test_repair_valid_polygon(self):
        response = await devarea_repair(PARCEL)

        assert response["was_valid"] is True
        assert response["repaired"] is False
        assert response["vertex_count"] == 5

    @pytest.mark.asyncio
    async def test_list_sources(self):
        response = await devarea_list_sources("default")

        assert "default" in [p["name"] for p in response["profiles"]]
        assert "flood" in [s["name"] for s in response["sources"]]
        assert response["remote_geometry_service"] is False

    @pytest.mark.asyncio
    async def test_list_sources_unknown_profile(self):
        response = await devarea_list_sources("nope")
        assert response["isError"] is True
