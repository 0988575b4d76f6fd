"""ArcGIS GeometryServer client used by the remote difference tier."""

import asyncio
import json
import logging
from typing import Protocol

import aiohttp

from ..errors import GeometryServiceError
from ..models.settings import RemoteServiceSettings
from ._http import client_session

logger = logging.getLogger(__name__)

ESRI_POLYGON = "esriGeometryPolygon"


class GeometryService(Protocol):
    """Anything that can subtract ESRI ring sets remotely."""

    async def difference(self, minuend_rings: list, subtrahend_rings: list) -> list:
        ...


class ArcGISGeometryService:
    """Client for the ``difference`` operation of an ArcGIS GeometryServer.

    Requests are form-encoded POSTs. The minuend is sent in ``geometries`` and
    the subtrahend in ``geometry``, both tagged with the configured spatial
    reference.
    """

    def __init__(
        self,
        url: str,
        wkid: int = 4326,
        timeout_s: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ):
        self.url = url.rstrip("/")
        self.wkid = wkid
        self.timeout_s = timeout_s
        self._session = session

    @classmethod
    def from_settings(
        cls,
        settings: RemoteServiceSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> "ArcGISGeometryService":
        return cls(settings.url, wkid=settings.wkid, timeout_s=settings.timeout_s, session=session)

    def build_difference_form(self, minuend_rings: list, subtrahend_rings: list) -> dict[str, str]:
        """Form fields for a difference request."""
        spatial_reference = {"wkid": self.wkid}
        geometries = {
            "geometryType": ESRI_POLYGON,
            "geometries": [{"rings": minuend_rings, "spatialReference": spatial_reference}],
        }
        geometry = {"rings": subtrahend_rings, "spatialReference": spatial_reference}
        return {
            "f": "json",
            "geometries": json.dumps(geometries),
            "geometry": json.dumps(geometry),
            "geometryType": ESRI_POLYGON,
            "sr": str(self.wkid),
        }

    async def difference(self, minuend_rings: list, subtrahend_rings: list) -> list:
        """Subtract ``subtrahend_rings`` from ``minuend_rings``.

        Args:
            minuend_rings: ESRI rings of the polygon to subtract from
            subtrahend_rings: ESRI rings of the polygon to subtract

        Returns:
            ESRI rings of the first returned geometry (may be empty)

        Raises:
            GeometryServiceError: On transport errors, timeouts, non-200
                responses, error payloads or malformed responses
        """
        endpoint = f"{self.url}/difference"
        form = self.build_difference_form(minuend_rings, subtrahend_rings)

        try:
            async with client_session(self._session, self.timeout_s) as session:
                async with session.post(
                    endpoint,
                    data=form,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_s),
                ) as resp:
                    if resp.status != 200:
                        raise GeometryServiceError(f"HTTP {resp.status} from {endpoint}")
                    payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise GeometryServiceError(f"Timeout after {self.timeout_s}s calling {endpoint}") from e
        except aiohttp.ClientError as e:
            raise GeometryServiceError(f"Request to {endpoint} failed: {e}") from e
        except json.JSONDecodeError as e:
            raise GeometryServiceError(f"Invalid JSON from {endpoint}: {e}") from e

        return parse_difference_response(payload)


def parse_difference_response(payload) -> list:
    """Extract the result rings from a difference response.

    Raises:
        GeometryServiceError: If the payload carries an error or no geometries
    """
    if not isinstance(payload, dict):
        raise GeometryServiceError("Geometry service response is not a JSON object")

    if "error" in payload:
        error = payload["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise GeometryServiceError(f"Geometry service error: {message}")

    geometries = payload.get("geometries")
    if not isinstance(geometries, list):
        raise GeometryServiceError("Geometry service response has no geometries")
    if not geometries:
        return []

    first = geometries[0] or {}
    if not isinstance(first, dict):
        raise GeometryServiceError("Geometry service returned a non-object geometry")

    rings = first.get("rings") or []
    if not isinstance(rings, list) or not all(_is_ring(ring) for ring in rings):
        raise GeometryServiceError("Geometry service returned malformed rings")
    logger.debug(f"Geometry service returned {len(rings)} rings")
    return rings


def _is_ring(ring) -> bool:
    """A list of [x, y, ...] points with numeric coordinates."""
    if not isinstance(ring, list):
        return False
    for point in ring:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            return False
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in point[:2]):
            return False
    return True
