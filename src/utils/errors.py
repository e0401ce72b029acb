"""Custom exception hierarchy for SoundMatrix.

All application exceptions inherit from :class:`SoundMatrixError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "spotify", "soundcloud", "extractor") caused the
failure.

The hierarchy follows the error taxonomy of the profiling pipeline:

    SoundMatrixError  (base -- catch-all for any SoundMatrix error)
    +-- ProviderUnavailableError (catalog adapter unreachable / misconfigured)
    +-- RateLimitError           (catalog adapter throttled us)
    +-- ProviderResponseError    (non-success HTTP status from an adapter)
    +-- NoCandidateError         (every resolution step came back empty)
    +-- ExtractionError          (feature extraction failed for a reference)
    +-- NoTracksAvailableError   (upstream catalogs returned nothing usable)
    +-- PersistenceError         (document store write failed)
    +-- PipelineError            (orchestration / invalid lifecycle transition)
    +-- ConfigurationError       (startup / missing config)

None of these are fatal to the process.  Adapters raise the provider
errors, the resolution engine swallows them, and the orchestrator turns
extraction and persistence failures into skips and diagnostic counters.
"""


class SoundMatrixError(Exception):
    """Base exception for all SoundMatrix errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for
    structured log output, e.g. ``[spotify] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Provider-unreachable family
# ---------------------------------------------------------------------------

class ProviderUnavailableError(SoundMatrixError):
    """Raised when a catalog adapter is unreachable or not configured.

    The resolution engine catches this and moves to the next step of the
    active strategy.
    """

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(SoundMatrixError):
    """Raised when a provider answers 429.

    ``retry_after`` carries the server-suggested wait in seconds when the
    response included one.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float | None:
        return self._retry_after


class ProviderResponseError(SoundMatrixError):
    """Raised when a provider returns a non-success status code."""

    def __init__(
        self,
        message: str = "Provider returned an error response",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Resolution / extraction
# ---------------------------------------------------------------------------

class NoCandidateError(SoundMatrixError):
    """Raised when resolution exhausted every step without a reference."""

    def __init__(
        self,
        message: str = "No audio reference found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(SoundMatrixError):
    """Raised when the feature-extraction collaborator fails for a reference."""

    def __init__(
        self,
        message: str = "Feature extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoTracksAvailableError(SoundMatrixError):
    """Raised when no upstream catalog produced tracks for an artist.

    ``fail_subtype`` distinguishes "no tracks at all" from "tracks found but
    no usable audio" in API responses.
    """

    def __init__(
        self,
        message: str = "No tracks available for artist",
        provider_name: str | None = None,
        fail_subtype: str = "no_tracks",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._fail_subtype = fail_subtype

    @property
    def fail_subtype(self) -> str:
        return self._fail_subtype


# ---------------------------------------------------------------------------
# Persistence / orchestration / configuration
# ---------------------------------------------------------------------------

class PersistenceError(SoundMatrixError):
    """Raised when a document-store write could not be confirmed."""

    def __init__(
        self,
        message: str = "Profile store write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(SoundMatrixError):
    """Raised when orchestration fails (invalid lifecycle transition, etc.)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(SoundMatrixError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
