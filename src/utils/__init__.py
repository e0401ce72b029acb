"""Utility modules for SoundMatrix.

- **confidence** -- weighted scoring math used by the resolution engine.
- **errors** -- exception hierarchy rooted at SoundMatrixError.
- **concurrency** -- semaphore-bounded fan-out and per-provider request
  pacing.
- **logging** -- structlog setup with console/JSON renderers and
  correlation-id binding.
- **text_normalizer** -- title/credit normalization, name simplification
  and rapidfuzz helpers.
"""

from src.utils.concurrency import RequestPacer, throttled_gather
from src.utils.confidence import calculate_confidence, normalize_score
from src.utils.errors import (
    ConfigurationError,
    ExtractionError,
    NoCandidateError,
    NoTracksAvailableError,
    PersistenceError,
    PipelineError,
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitError,
    SoundMatrixError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.text_normalizer import (
    fuzzy_ratio,
    normalize_for_match,
    simplify_track_name,
    split_artist_credit,
)

__all__ = [
    "ConfigurationError",
    "ExtractionError",
    "NoCandidateError",
    "NoTracksAvailableError",
    "PersistenceError",
    "PipelineError",
    "ProviderResponseError",
    "ProviderUnavailableError",
    "RateLimitError",
    "RequestPacer",
    "SoundMatrixError",
    "calculate_confidence",
    "configure_logging",
    "fuzzy_ratio",
    "get_logger",
    "normalize_for_match",
    "normalize_score",
    "simplify_track_name",
    "split_artist_credit",
    "throttled_gather",
]
