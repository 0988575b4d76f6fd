"""Exception taxonomy for developable area computation."""


class DevelopableAreaError(Exception):
    """Base class for all developable area errors."""


class NormalizationError(DevelopableAreaError):
    """Input could not be turned into a Feature<Polygon|MultiPolygon>."""


class RepairFailure(DevelopableAreaError):
    """Every repair strategy failed to produce a valid polygon.

    Callers must treat the original geometry as opaque.
    """

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class DifferenceDegraded(DevelopableAreaError):
    """All difference tiers failed and the minuend was returned unchanged.

    Non-fatal. Only raised when the engine runs in strict mode; otherwise
    the reasons are recorded on the returned feature and on the build result.
    """

    def __init__(self, message: str, reasons: dict[str, str] | None = None):
        super().__init__(message)
        self.reasons = reasons or {}


class SyncFailure(DevelopableAreaError):
    """Persisting a result failed through both the primary and fallback paths."""

    def __init__(
        self,
        message: str,
        primary_error: str | None = None,
        fallback_error: str | None = None,
    ):
        super().__init__(message)
        self.primary_error = primary_error
        self.fallback_error = fallback_error

    def __str__(self) -> str:
        base = super().__str__()
        details = []
        if self.primary_error:
            details.append(f"primary: {self.primary_error}")
        if self.fallback_error:
            details.append(f"fallback: {self.fallback_error}")
        if details:
            return f"{base} ({'; '.join(details)})"
        return base


class BuildCancelled(DevelopableAreaError):
    """The caller's cancellation check fired between restriction features."""


class GeometryServiceError(DevelopableAreaError):
    """Remote geometry service returned an error or an unusable response."""


class RestrictionQueryError(DevelopableAreaError):
    """A restriction source query failed."""
