"""Persistence of a developable area into a host drawing layer.

The host exposes an opaque async key/value store. Layers live in a
FeatureCollection under ``rawSections``; the target layer is the feature
whose ``properties.id`` matches the requested layer id. Updates go through
the host's single-feature update call first and fall back to rewriting the
whole collection.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import structlog
from shapely.geometry import shape

from ..errors import SyncFailure
from ..export.geojson import result_to_feature
from ..geometry.polygon_ops import largest_polygon, shape_to_geometry
from ..models.feature import DevelopableAreaResult

logger = structlog.get_logger(__name__)

RAW_GEO_TYPES = {
    "Polygon": "RawPolygon",
    "MultiPolygon": "RawMultiPolygon",
    "LineString": "RawLineString",
    "MultiLineString": "RawMultiLineString",
    "Point": "RawPoint",
}


class LayerStore(Protocol):
    """Host key/value store holding drawing layers."""

    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> Any:
        ...


class InMemoryLayerStore:
    """Dict-backed layer store.

    Values are deep-copied on the way in and out so callers can never alias
    stored state. ``updateRawSection`` writes are applied to the
    ``rawSections`` collection the way a host application would.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.writes: list[str] = []

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> bool:
        self.writes.append(key)
        if key == "updateRawSection":
            return self._update_raw_section(copy.deepcopy(value))
        self._data[key] = copy.deepcopy(value)
        return True

    def _update_raw_section(self, feature: dict) -> bool:
        collection = self._data.get("rawSections") or {}
        target_id = (feature.get("properties") or {}).get("id")
        for index, existing in enumerate(collection.get("features") or []):
            if (existing.get("properties") or {}).get("id") == target_id:
                collection["features"][index] = feature
                return True
        raise KeyError(f"No raw section with id {target_id!r}")


def find_layer(collection: Any, layer_id: Any) -> Optional[dict]:
    """Find the feature whose ``properties.id`` equals ``layer_id``."""
    if not isinstance(collection, dict):
        return None
    for feature in collection.get("features") or []:
        if (feature.get("properties") or {}).get("id") == layer_id:
            return feature
    return None


def build_updated_layer(target: dict, result: DevelopableAreaResult) -> dict:
    """Merge a result into a copy of the host layer feature.

    A MultiPolygon result written into a Polygon layer keeps only its
    largest part.
    """
    exported = result_to_feature(result)
    geometry = exported["geometry"]

    target_type = (target.get("geometry") or {}).get("type")
    if geometry["type"] == "MultiPolygon" and target_type == "Polygon":
        geometry = shape_to_geometry(largest_polygon(shape(geometry)))

    updated = copy.deepcopy(target)
    updated["geometry"] = geometry
    properties = {
        **(target.get("properties") or {}),
        **exported["properties"],
        "generatedDevelopableArea": True,
        "generatedTimestamp": datetime.now(timezone.utc).isoformat(),
    }
    if not properties.get("rawGeoType") and geometry["type"] in RAW_GEO_TYPES:
        properties["rawGeoType"] = RAW_GEO_TYPES[geometry["type"]]
    updated["properties"] = properties
    return updated


async def sync_developable_area(
    store: LayerStore,
    layer_id: Any,
    result: DevelopableAreaResult,
    collection_key: str = "rawSections",
    update_key: str = "updateRawSection",
) -> dict[str, Any]:
    """Write a developable area into the host layer ``layer_id``.

    Args:
        store: Host layer store
        layer_id: ``properties.id`` of the target layer feature
        result: Build result to persist
        collection_key: Store key of the layer collection
        update_key: Store key of the single-feature update call

    Returns:
        Dict with ``layer_id``, the ``method`` that succeeded and the written
        ``feature``

    Raises:
        SyncFailure: If the result is empty, the target layer is missing, or
            both persistence paths failed
    """
    log = logger.bind(layer_id=layer_id)

    if result.is_empty:
        log.warning("layer_sync_rejected", reason="empty result")
        raise SyncFailure("Refusing to write an empty developable area")

    collection = await store.get(collection_key)
    target = find_layer(collection, layer_id)
    if target is None:
        log.warning("layer_sync_rejected", reason="target layer not found")
        raise SyncFailure(f"Layer {layer_id!r} not found in {collection_key}")

    updated = build_updated_layer(target, result)
    log.info("layer_sync_started", geometry_type=updated["geometry"]["type"])

    primary_error = await _persist(store, update_key, updated)
    if primary_error is None:
        log.info("layer_sync_completed", method=update_key)
        return {"layer_id": layer_id, "method": update_key, "feature": updated}

    log.warning("layer_sync_primary_failed", error=primary_error)

    rewritten = copy.deepcopy(collection)
    rewritten["features"] = [
        updated if (f.get("properties") or {}).get("id") == layer_id else f
        for f in rewritten.get("features") or []
    ]
    fallback_error = await _persist(store, collection_key, rewritten)
    if fallback_error is None:
        log.info("layer_sync_completed", method=collection_key)
        return {"layer_id": layer_id, "method": collection_key, "feature": updated}

    log.error("layer_sync_failed", primary_error=primary_error, fallback_error=fallback_error)
    raise SyncFailure(
        f"Could not persist developable area to layer {layer_id!r}",
        primary_error=primary_error,
        fallback_error=fallback_error,
    )


async def _persist(store: LayerStore, key: str, value: Any) -> Optional[str]:
    """Write through the store; return an error description on failure."""
    try:
        outcome = await store.set(key, value)
    except Exception as e:  # host store errors are opaque
        return f"{type(e).__name__}: {e}"
    if outcome is False:
        return f"{key} was rejected by the host"
    return None
