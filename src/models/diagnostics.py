"""Per-artist diagnostics context.

One :class:`AnalysisDiagnostics` is created at the start of an artist
orchestration, passed by reference through track acquisition, resolution
and extraction, and serialised into the response's ``diagnostics`` block
when the call ends.  Nothing here is process-global: two artists processed
concurrently by the batch driver each get their own instance.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from src.models.resolution import ResolutionOutcome, SourceTag

_MISSING_PREVIEW_SAMPLE = 5


@dataclass
class RoundCounters:
    attempted: int = 0
    with_reference: int = 0
    succeeded: int = 0
    executed: bool = False

    @property
    def success_rate(self) -> float:
        if self.attempted == 0:
            return 0.0
        return self.succeeded / self.attempted

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "withReference": self.with_reference,
            "succeeded": self.succeeded,
            "executed": self.executed,
            "successRate": round(self.success_rate, 3),
        }


@dataclass
class AnalysisDiagnostics:
    """Mutable counters for one artist invocation.

    Resolution counters are keyed by provider name (``"spotify"``,
    ``"itunes"``, ``"soundcloud"``...); source counts are keyed by
    :class:`SourceTag` value.
    """

    strategy: str
    fast_mode: bool = False
    attempt_budget: int = 0
    query_sample_size: int = 12

    # -- resolution --
    attempts_by_provider: Counter = field(default_factory=Counter)
    hits_by_provider: Counter = field(default_factory=Counter)
    failures_by_provider: Counter = field(default_factory=Counter)
    source_counts: Counter = field(default_factory=Counter)
    suppressed: int = 0
    restored: int = 0
    primary_overrides: int = 0
    markets_tried: list[str] = field(default_factory=list)
    recovery_queries: int = 0
    recovery_hits: int = 0
    relaxed_attempts: int = 0
    suffix_strips: int = 0
    first_hit: dict[str, Any] | None = None
    community_queries: list[str] = field(default_factory=list)
    budget_exhausted_tracks: int = 0
    primary_recovery_disabled: bool = False

    # -- extraction --
    extraction_attempts: int = 0
    extraction_failures: int = 0
    extraction_cache_hits: int = 0

    # -- acquisition --
    initial_tracks: int = 0
    skipped_existing: int = 0
    methods: Counter = field(default_factory=Counter)
    fallbacks: list[str] = field(default_factory=list)
    catalog_token_status: str = "unknown"
    missing_known_reference: list[str] = field(default_factory=list)

    # -- rounds --
    round1: RoundCounters = field(default_factory=RoundCounters)
    round2: RoundCounters = field(default_factory=RoundCounters)

    # ------------------------------------------------------------------
    # Recording helpers
    # ------------------------------------------------------------------

    def record_attempt(self, provider: str) -> None:
        self.attempts_by_provider[provider] += 1

    def record_failure(self, provider: str) -> None:
        self.failures_by_provider[provider] += 1

    def record_hit(self, provider: str, source_tag: SourceTag, track_name: str, query: str = "") -> None:
        self.hits_by_provider[provider] += 1
        if self.first_hit is None:
            self.first_hit = {
                "provider": provider,
                "sourceTag": source_tag.value,
                "track": track_name,
                "query": query,
            }

    def record_market(self, market: str) -> None:
        if market and market not in self.markets_tried:
            self.markets_tried.append(market)

    def record_community_query(self, query: str) -> None:
        if (
            query
            and query not in self.community_queries
            and len(self.community_queries) < self.query_sample_size
        ):
            self.community_queries.append(query)

    def record_missing_known_reference(self, track_name: str) -> None:
        if len(self.missing_known_reference) < _MISSING_PREVIEW_SAMPLE:
            self.missing_known_reference.append(track_name)

    def record_outcome(self, outcome: ResolutionOutcome) -> None:
        self.source_counts[outcome.source_tag.value] += 1
        if outcome.suppressed:
            self.suppressed += 1
        if outcome.restored:
            self.restored += 1
        if outcome.budget_exhausted:
            self.budget_exhausted_tracks += 1

    def to_dict(self) -> dict[str, Any]:
        """Serialise into the camelCase ``diagnostics`` block of the API."""
        providers = sorted(
            set(self.attempts_by_provider) | set(self.hits_by_provider) | set(self.failures_by_provider)
        )
        return {
            "strategy": self.strategy,
            "fastMode": self.fast_mode,
            "attemptBudget": self.attempt_budget,
            "providers": {
                name: {
                    "attempts": self.attempts_by_provider.get(name, 0),
                    "hits": self.hits_by_provider.get(name, 0),
                    "failures": self.failures_by_provider.get(name, 0),
                }
                for name in providers
            },
            "sourceCounts": dict(self.source_counts),
            "suppressed": self.suppressed,
            "restored": self.restored,
            "primaryOverrides": self.primary_overrides,
            "budgetExhaustedTracks": self.budget_exhausted_tracks,
            "primaryRecovery": {
                "disabled": self.primary_recovery_disabled,
                "queries": self.recovery_queries,
                "hits": self.recovery_hits,
                "marketsTried": list(self.markets_tried),
                "relaxedAttempts": self.relaxed_attempts,
                "suffixStrips": self.suffix_strips,
                "firstHit": self.first_hit,
            },
            "communityQueries": list(self.community_queries),
            "extraction": {
                "attempts": self.extraction_attempts,
                "failures": self.extraction_failures,
                "cacheHits": self.extraction_cache_hits,
            },
            "acquisition": {
                "initialTracks": self.initial_tracks,
                "skippedExisting": self.skipped_existing,
                "methods": dict(self.methods),
                "fallbacks": list(self.fallbacks),
                "catalogTokenStatus": self.catalog_token_status,
                "missingKnownReferenceSample": list(self.missing_known_reference),
            },
            "rounds": {
                "round1": self.round1.to_dict(),
                "round2": self.round2.to_dict(),
            },
        }
