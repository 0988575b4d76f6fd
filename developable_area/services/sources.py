"""Restriction source providers.

A provider lists the configured overlay categories and returns the GeoJSON
features of one category inside a bounding envelope. The area builder only
depends on the ``RestrictionSourceProvider`` protocol.
"""

import asyncio
import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Optional, Protocol

import aiohttp

from ..errors import RestrictionQueryError
from ..models.settings import EngineSettings
from ..models.sources import RestrictionSource
from ._http import client_session

logger = logging.getLogger(__name__)

# (min_x, min_y, max_x, max_y)
Envelope = tuple[float, float, float, float]


class RestrictionSourceProvider(Protocol):
    """Source of restriction overlay features."""

    def sources(self) -> list[RestrictionSource]:
        ...

    async def query(self, source: RestrictionSource, envelope: Envelope) -> list[dict]:
        ...


def build_query_params(source: RestrictionSource, envelope: Envelope) -> dict[str, str]:
    """ArcGIS REST ``query`` parameters for an envelope search."""
    return {
        "where": source.where,
        "geometry": ",".join(f"{v:.10g}" for v in envelope),
        "geometryType": "esriGeometryEnvelope",
        "inSR": str(source.in_sr),
        "outSR": str(source.out_sr),
        "spatialRel": "esriSpatialRelIntersects",
        "outFields": source.out_fields,
        "returnGeometry": "true",
        "f": "geojson",
    }


class ArcGISRestrictionSourceProvider:
    """Queries ArcGIS MapServer/FeatureServer layers for restriction features."""

    def __init__(
        self,
        sources: list[RestrictionSource],
        timeout_s: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ):
        self._sources = list(sources)
        self.timeout_s = timeout_s
        self._session = session

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> "ArcGISRestrictionSourceProvider":
        return cls(
            settings.restriction_sources,
            timeout_s=settings.build.query_timeout_s,
            session=session,
        )

    def sources(self) -> list[RestrictionSource]:
        return [s for s in self._sources if s.enabled and s.query_url]

    async def query(self, source: RestrictionSource, envelope: Envelope) -> list[dict]:
        """Fetch the features of ``source`` intersecting ``envelope``.

        Raises:
            RestrictionQueryError: On transport errors, timeouts, non-200
                responses or error payloads
        """
        url = source.query_url
        if not url:
            raise RestrictionQueryError(f"Source {source.name} has no query URL")

        params = build_query_params(source, envelope)
        try:
            async with client_session(self._session, self.timeout_s) as session:
                async with session.get(
                    url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_s),
                ) as resp:
                    if resp.status != 200:
                        raise RestrictionQueryError(f"HTTP {resp.status} for {source.name}")
                    data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RestrictionQueryError(f"Timeout querying {source.name}") from e
        except aiohttp.ClientError as e:
            raise RestrictionQueryError(f"Error querying {source.name}: {e}") from e
        except json.JSONDecodeError as e:
            raise RestrictionQueryError(f"Invalid JSON from {source.name}: {e}") from e

        if not isinstance(data, dict):
            raise RestrictionQueryError(f"Unexpected response from {source.name}")
        if "error" in data:
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise RestrictionQueryError(f"{source.name} query failed: {message}")

        features = data.get("features") or []
        logger.debug(f"{source.name}: {len(features)} features returned")
        return features


class StaticRestrictionSourceProvider:
    """Serves restriction features from in-memory FeatureCollections.

    Args:
        collections: Mapping of source name to a FeatureCollection, a list of
            features, or a single feature
        sources: Source definitions (defaults to one bare source per key)
        failing: Source names whose queries raise, for exercising degraded runs
    """

    def __init__(
        self,
        collections: Mapping[str, Any],
        sources: Optional[list[RestrictionSource]] = None,
        failing: Optional[set[str]] = None,
    ):
        self._collections = dict(collections)
        if sources is None:
            sources = [RestrictionSource(name=name) for name in self._collections]
        self._sources = list(sources)
        self._failing = set(failing or ())
        self.queries: list[tuple[str, Envelope]] = []

    def sources(self) -> list[RestrictionSource]:
        return [s for s in self._sources if s.enabled]

    async def query(self, source: RestrictionSource, envelope: Envelope) -> list[dict]:
        self.queries.append((source.name, envelope))
        if source.name in self._failing:
            raise RestrictionQueryError(f"{source.name} is unavailable")

        features = _as_feature_list(self._collections.get(source.name))
        return [copy.deepcopy(f) for f in features if _touches_envelope(f, envelope)]


def _as_feature_list(value: Any) -> list[dict]:
    if not value:
        return []
    if isinstance(value, Mapping):
        if value.get("type") == "FeatureCollection":
            return list(value.get("features") or [])
        return [dict(value)]
    return list(value)


def _touches_envelope(feature: Any, envelope: Envelope) -> bool:
    """Envelope test on raw coordinates; unreadable geometry is passed through."""
    geometry = feature.get("geometry") if isinstance(feature, Mapping) else None
    if not isinstance(geometry, Mapping):
        return True

    xs: list[float] = []
    ys: list[float] = []
    _collect_coords(geometry.get("coordinates"), xs, ys)
    if not xs:
        return True
    return not (
        max(xs) < envelope[0]
        or min(xs) > envelope[2]
        or max(ys) < envelope[1]
        or min(ys) > envelope[3]
    )


def _collect_coords(value: Any, xs: list[float], ys: list[float]) -> None:
    if not isinstance(value, (list, tuple)) or not value:
        return
    if isinstance(value[0], (int, float)):
        if len(value) >= 2:
            xs.append(float(value[0]))
            ys.append(float(value[1]))
        return
    for item in value:
        _collect_coords(item, xs, ys)
