"""Tests for feature normalization.

Covers the input shapes accepted from overlay services and drawing layers,
ring closing, and line overlay buffering.
"""

import copy

import pytest
from shapely.geometry import shape

from developable_area.errors import NormalizationError
from developable_area.geometry.normalize import normalize_feature, normalize_restriction
from developable_area.geometry.repair import is_valid_feature
from developable_area.models.feature import PolygonFeature

SQUARE_RING = [[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0], [0.0, 0.0]]


def square_feature(properties=None):
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [copy.deepcopy(SQUARE_RING)]},
        "properties": properties or {},
    }


class TestCanonicalInput:
    """Already-canonical features pass through unchanged."""

    def test_canonical_feature_round_trips(self):
        feature = square_feature({"id": "lot-7"})
        result = normalize_feature(feature)

        assert result.geometry == feature["geometry"]
        assert result.properties == {"id": "lot-7"}
        assert result.tags == {}

    def test_polygon_feature_is_returned_as_is(self):
        feature = normalize_feature(square_feature())
        assert normalize_feature(feature) is feature

    def test_input_is_not_mutated(self):
        feature = square_feature({"nested": {"a": 1}})
        feature["geometry"]["coordinates"][0] = feature["geometry"]["coordinates"][0][:-1]
        before = copy.deepcopy(feature)

        result = normalize_feature(feature)
        result.properties["nested"]["a"] = 2

        assert feature == before

    def test_export_then_normalize_is_stable(self):
        feature = normalize_feature(square_feature({"id": 3}))
        again = normalize_feature(feature.to_geojson(include_tags=False))
        assert again == feature


class TestInputShapes:
    """Feature, geometry, collection and ad hoc inputs."""

    def test_feature_collection_uses_first_feature(self):
        second = square_feature({"id": "second"})
        collection = {
            "type": "FeatureCollection",
            "features": [square_feature({"id": "first"}), second],
        }
        assert normalize_feature(collection).properties == {"id": "first"}

    def test_empty_feature_collection_fails(self):
        with pytest.raises(NormalizationError):
            normalize_feature({"type": "FeatureCollection", "features": []})

    def test_bare_geometry_gets_empty_properties(self):
        result = normalize_feature({"type": "Polygon", "coordinates": [SQUARE_RING]})
        assert isinstance(result, PolygonFeature)
        assert result.properties == {}

    def test_untyped_object_with_geometry_is_wrapped(self):
        result = normalize_feature({
            "geometry": {"type": "Polygon", "coordinates": [SQUARE_RING]},
            "properties": {"name": "parcel"},
        })
        assert result.properties == {"name": "parcel"}

    def test_untyped_coordinates_default_to_polygon(self):
        result = normalize_feature({"coordinates": [SQUARE_RING]})
        assert result.geometry_type == "Polygon"

    def test_untyped_coordinates_infer_multipolygon(self):
        result = normalize_feature({"coordinates": [[SQUARE_RING], [SQUARE_RING]]})
        assert result.geometry_type == "MultiPolygon"
        assert len(result.geometry["coordinates"]) == 2

    def test_single_bare_ring_is_wrapped(self):
        result = normalize_feature({"type": "Polygon", "coordinates": SQUARE_RING})
        assert result.geometry["coordinates"] == [SQUARE_RING]

    def test_extra_ordinates_are_dropped(self):
        ring = [[x, y, 42.0] for x, y in SQUARE_RING]
        result = normalize_feature({"type": "Polygon", "coordinates": [ring]})
        assert all(len(p) == 2 for p in result.geometry["coordinates"][0])

    def test_integer_coordinates_become_floats(self):
        ring = [[0, 0], [4, 0], [4, 4], [0, 4], [0, 0]]
        result = normalize_feature({"type": "Polygon", "coordinates": [ring]})
        assert all(isinstance(v, float) for p in result.geometry["coordinates"][0] for v in p)


class TestRingClosing:
    """Open rings are closed by repeating the first point."""

    def test_open_ring_is_closed(self):
        open_ring = SQUARE_RING[:-1]
        result = normalize_feature({"type": "Polygon", "coordinates": [open_ring]})
        ring = result.geometry["coordinates"][0]

        assert ring[0] == ring[-1]
        assert len(ring) == 5

    def test_float_drifted_endpoint_is_closed_and_valid(self):
        drifted = SQUARE_RING[:-1] + [[1e-9, 1e-9]]
        result = normalize_feature({"type": "Polygon", "coordinates": [drifted]})
        ring = result.geometry["coordinates"][0]

        assert ring[0] == ring[-1]
        assert len(ring) == 6
        assert is_valid_feature(result)

    def test_open_triangle_is_closed_to_four_points(self):
        result = normalize_feature({"coordinates": [[[0, 0], [1, 0], [0, 1]]]})
        assert len(result.geometry["coordinates"][0]) == 4

    def test_two_point_ring_fails(self):
        with pytest.raises(NormalizationError):
            normalize_feature({"coordinates": [[[0, 0], [1, 0]]]})

    def test_holes_are_closed_too(self):
        hole = [[2.0, 2.0], [2.0, 4.0], [4.0, 4.0], [4.0, 2.0]]
        result = normalize_feature({"type": "Polygon", "coordinates": [SQUARE_RING, hole]})
        assert result.geometry["coordinates"][1][-1] == [2.0, 2.0]


class TestRejectedInput:
    """Missing or non-polygonal geometry."""

    @pytest.mark.parametrize("value", [
        None,
        "POLYGON((0 0, 1 0, 1 1, 0 0))",
        {},
        {"type": "Feature", "geometry": None},
        {"type": "Polygon", "coordinates": []},
    ])
    def test_missing_geometry_fails(self, value):
        with pytest.raises(NormalizationError):
            normalize_feature(value)

    def test_line_string_fails(self):
        with pytest.raises(NormalizationError):
            normalize_feature({"type": "LineString", "coordinates": [[0, 0], [1, 1]]})

    def test_non_numeric_coordinate_fails(self):
        with pytest.raises(NormalizationError):
            normalize_feature({"coordinates": [[[0, 0], ["a", 0], [1, 1], [0, 0]]]})


class TestNormalizeRestriction:
    """Line overlays become polygon corridors."""

    def test_line_is_buffered_into_corridor(self):
        line = {
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": [[0, 5], [10, 5]]},
            "properties": {"voltage": "132kV"},
        }
        result = normalize_restriction(line, line_buffer=0.5)
        geom = shape(result.geometry)

        assert result.tags["lineBuffered"] is True
        assert result.properties == {"voltage": "132kV"}
        assert geom.is_valid
        assert geom.bounds[1] == pytest.approx(4.5)
        assert geom.bounds[3] == pytest.approx(5.5)

    def test_line_without_buffer_fails(self):
        line = {"type": "LineString", "coordinates": [[0, 5], [10, 5]]}
        with pytest.raises(NormalizationError):
            normalize_restriction(line)

    def test_polygon_restriction_is_not_buffered(self):
        result = normalize_restriction(square_feature(), line_buffer=0.5)
        assert "lineBuffered" not in result.tags
        assert result.geometry["coordinates"] == [SQUARE_RING]
