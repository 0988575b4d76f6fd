"""Persistence of developable areas into host drawing layers."""

from .layer_sync import (
    InMemoryLayerStore,
    LayerStore,
    build_updated_layer,
    find_layer,
    sync_developable_area,
)

__all__ = [
    "LayerStore",
    "InMemoryLayerStore",
    "find_layer",
    "build_updated_layer",
    "sync_developable_area",
]
