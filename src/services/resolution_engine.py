"""Provider resolution engine: find one playable audio reference per track.

Given a :class:`~src.models.track.TrackDescriptor` and a
:class:`~src.models.resolution.ResolutionStrategy`, the engine walks an
ordered list of *steps*.  Each step plans a handful of catalog queries,
scores whatever comes back with :mod:`src.services.candidate_scoring`, and
either accepts the best candidate or hands over to the next step.

Strategies are data, not code paths.  :data:`STRATEGY_POLICIES` maps each
strategy to its step order and to a suppression rule for the reference the
upstream catalog already supplied:

================== ================== =========================================
strategy           known reference    step order
================== ================== =========================================
balanced           used first         known, primary recovery, alt exact,
                                      alt broad, community exact, aggregator,
                                      restore
primary-first      held back          alt exact, alt broad, community exact,
                                      aggregator, known
community-primary  primary suppressed known, community exact / simplified /
                                      artist-only, aggregator, restore
forced-diagnostic  any suppressed     community exact / simplified /
                                      artist-only, aggregator, restore
================== ================== =========================================

Every adapter query costs one attempt against a per-track budget.  When the
budget runs out the engine stops and returns the best viable candidate it
has seen, flagged ``budget_exhausted``.  Adapter failures never propagate:
they are logged, counted per provider and treated as "no candidate".
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

import httpx

from src.config.tuning import ResolutionConfig
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.models.diagnostics import AnalysisDiagnostics
from src.models.resolution import ResolutionOutcome, ResolutionStrategy, SourceTag
from src.models.track import TrackDescriptor
from src.services.candidate_scoring import (
    ARTIST_RULES,
    TITLE_RULES,
    CandidateScore,
    MatchTarget,
    ScoringRule,
    StepSpec,
    best_candidate,
    rules_with_overrides,
)
from src.utils.errors import SoundMatrixError
from src.utils.logging import get_logger
from src.utils.text_normalizer import simplify_track_name, split_artist_credit

logger = get_logger(__name__)


class Step(str, Enum):  # noqa: UP042
    KNOWN = "known"
    PRIMARY_RECOVERY = "primary_recovery"
    ALT_EXACT = "alt_exact"
    ALT_BROAD = "alt_broad"
    COMMUNITY_EXACT = "community_exact"
    COMMUNITY_SIMPLIFIED = "community_simplified"
    COMMUNITY_ARTIST_ONLY = "community_artist_only"
    AGGREGATOR = "aggregator"
    RESTORE = "restore"


class Suppression(str, Enum):  # noqa: UP042
    NONE = "none"
    HOLD_BACK = "hold_back"
    PRIMARY_ONLY = "primary_only"
    ANY = "any"


@dataclass(frozen=True)
class StrategyPolicy:
    steps: tuple[Step, ...]
    suppression: Suppression = Suppression.NONE


STRATEGY_POLICIES: dict[ResolutionStrategy, StrategyPolicy] = {
    ResolutionStrategy.BALANCED: StrategyPolicy(
        steps=(
            Step.KNOWN,
            Step.PRIMARY_RECOVERY,
            Step.ALT_EXACT,
            Step.ALT_BROAD,
            Step.COMMUNITY_EXACT,
            Step.AGGREGATOR,
            Step.RESTORE,
        ),
    ),
    ResolutionStrategy.PRIMARY_FIRST: StrategyPolicy(
        steps=(
            Step.ALT_EXACT,
            Step.ALT_BROAD,
            Step.COMMUNITY_EXACT,
            Step.AGGREGATOR,
            Step.KNOWN,
        ),
        suppression=Suppression.HOLD_BACK,
    ),
    ResolutionStrategy.COMMUNITY_PRIMARY: StrategyPolicy(
        steps=(
            Step.KNOWN,
            Step.COMMUNITY_EXACT,
            Step.COMMUNITY_SIMPLIFIED,
            Step.COMMUNITY_ARTIST_ONLY,
            Step.AGGREGATOR,
            Step.RESTORE,
        ),
        suppression=Suppression.PRIMARY_ONLY,
    ),
    ResolutionStrategy.FORCED_DIAGNOSTIC: StrategyPolicy(
        steps=(
            Step.COMMUNITY_EXACT,
            Step.COMMUNITY_SIMPLIFIED,
            Step.COMMUNITY_ARTIST_ONLY,
            Step.AGGREGATOR,
            Step.RESTORE,
        ),
        suppression=Suppression.ANY,
    ),
}

STEP_SPECS: dict[Step, StepSpec] = {
    Step.PRIMARY_RECOVERY: StepSpec(
        SourceTag.PRIMARY_CATALOG_RECOVERED,
        base_confidence=0.9,
        min_score=40.0,
        required_any=frozenset({"catalog_id_match", "title_exact"}),
    ),
    Step.ALT_EXACT: StepSpec(SourceTag.ALT_CATALOG_EXACT, 0.85, 40.0, TITLE_RULES),
    Step.ALT_BROAD: StepSpec(SourceTag.ALT_CATALOG_BROAD, 0.5, 20.0, ARTIST_RULES),
    Step.COMMUNITY_EXACT: StepSpec(SourceTag.COMMUNITY_HOSTED, 0.85, 40.0, TITLE_RULES),
    Step.COMMUNITY_SIMPLIFIED: StepSpec(SourceTag.COMMUNITY_HOSTED, 0.8, 35.0, TITLE_RULES),
    Step.COMMUNITY_ARTIST_ONLY: StepSpec(SourceTag.COMMUNITY_HOSTED, 0.7, 20.0, ARTIST_RULES),
    Step.AGGREGATOR: StepSpec(SourceTag.AGGREGATOR_OTHER, 0.6, 35.0, TITLE_RULES),
}

_KNOWN_CONFIDENCE = {SourceTag.PRIMARY_CATALOG: 1.0}
_DEFAULT_KNOWN_CONFIDENCE = 0.95


class _BudgetExhausted(Exception):
    pass


@dataclass(frozen=True)
class _PlannedQuery:
    provider: ICatalogProvider
    query: CatalogQuery
    target: MatchTarget
    delay: float = 0.0
    relaxed: bool = False


@dataclass
class _Run:
    """Mutable bookkeeping for one ``resolve`` call."""

    track: TrackDescriptor
    budget: int
    rules: tuple[ScoringRule, ...]
    diagnostics: AnalysisDiagnostics
    withheld: bool = False
    suppressed: bool = False
    attempts: int = 0
    by_provider: Counter = field(default_factory=Counter)
    trail: list[SourceTag] = field(default_factory=list)
    best_viable: tuple[CandidateScore, StepSpec] | None = None

    def consider(self, scored: CandidateScore, spec: StepSpec) -> None:
        if not scored.viable:
            return
        if self.best_viable is None or scored.points > self.best_viable[0].points:
            self.best_viable = (scored, spec)


class ResolutionEngine:
    """Resolve tracks to audio references across ranked catalog adapters.

    Parameters
    ----------
    primary:
        The primary catalog, used for market-partitioned preview recovery.
    alt_catalogs:
        Ranked alternative catalogs; the head is the top-priority catalog.
    community:
        Community-hosted sources.
    aggregators:
        Remaining sources, each queried on its own in order.
    config:
        Budgets, markets, query delays and scoring overrides.
    """

    def __init__(
        self,
        primary: ICatalogProvider | None,
        alt_catalogs: list[ICatalogProvider],
        community: list[ICatalogProvider],
        aggregators: list[ICatalogProvider],
        config: ResolutionConfig | None = None,
    ) -> None:
        self._primary = primary
        self._alt = alt_catalogs
        self._community = community
        self._aggregators = aggregators
        self._config = config or ResolutionConfig()

    @property
    def config(self) -> ResolutionConfig:
        return self._config

    def provider_names(self) -> list[str]:
        providers = ([self._primary] if self._primary else []) + self._alt + self._community + self._aggregators
        return [p.get_provider_name() for p in providers if p.is_available()]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self,
        track: TrackDescriptor,
        strategy: ResolutionStrategy,
        diagnostics: AnalysisDiagnostics,
        *,
        fast_mode: bool = False,
        max_attempts: int | None = None,
    ) -> ResolutionOutcome:
        policy = STRATEGY_POLICIES[strategy]
        run = _Run(
            track=track,
            budget=self._config.attempt_budget(fast_mode, max_attempts),
            rules=rules_with_overrides(self._config.scoring_overrides.get(strategy.value)),
            diagnostics=diagnostics,
            withheld=self._is_withheld(track, policy.suppression),
        )
        run.suppressed = run.withheld and policy.suppression is not Suppression.HOLD_BACK
        if not track.known_reference:
            diagnostics.record_missing_known_reference(track.name)

        try:
            outcome = await self._walk(run, policy, fast_mode)
        except _BudgetExhausted:
            outcome = self._exhausted_outcome(run)
            logger.info(
                "resolution_budget_exhausted",
                track=track.name,
                attempts=run.attempts,
                budget=run.budget,
                resolved=outcome.resolved,
            )

        diagnostics.record_outcome(outcome)
        logger.debug(
            "track_resolution_complete",
            track=track.name,
            strategy=strategy.value,
            source=outcome.source_tag.value,
            provider=outcome.provider,
            attempts=outcome.attempts,
            trail=[t.value for t in outcome.trail],
        )
        return outcome

    # ------------------------------------------------------------------
    # Step walking
    # ------------------------------------------------------------------

    @staticmethod
    def _is_withheld(track: TrackDescriptor, suppression: Suppression) -> bool:
        if not track.known_reference:
            return False
        if suppression is Suppression.ANY or suppression is Suppression.HOLD_BACK:
            return True
        if suppression is Suppression.PRIMARY_ONLY:
            return track.known_source is SourceTag.PRIMARY_CATALOG
        return False

    async def _walk(self, run: _Run, policy: StrategyPolicy, fast_mode: bool) -> ResolutionOutcome:
        track = run.track
        suppressed = run.suppressed

        for step in policy.steps:
            if step is Step.KNOWN:
                held_back = policy.suppression is Suppression.HOLD_BACK
                if track.known_reference and (not run.withheld or held_back):
                    return self._known_outcome(run, restored=False, suppressed=False)
                continue

            if step is Step.RESTORE:
                if track.known_reference and run.withheld:
                    return self._known_outcome(run, restored=True, suppressed=True)
                continue

            plan = self._plan(step, track, fast_mode, run.diagnostics)
            if not plan:
                continue
            spec = STEP_SPECS[step]
            run.trail.append(spec.source_tag)
            accepted = await self._execute(run, step, spec, plan)
            if accepted is not None:
                scored, _ = accepted
                if policy.suppression is Suppression.HOLD_BACK and track.known_reference:
                    run.diagnostics.primary_overrides += 1
                return self._candidate_outcome(run, scored, spec, suppressed=suppressed)

        return ResolutionOutcome(
            source_tag=SourceTag.NONE,
            attempts=run.attempts,
            attempts_by_provider=dict(run.by_provider),
            suppressed=suppressed,
            trail=list(run.trail),
        )

    async def _execute(
        self, run: _Run, step: Step, spec: StepSpec, plan: list[_PlannedQuery]
    ) -> tuple[CandidateScore, _PlannedQuery] | None:
        diagnostics = run.diagnostics
        stripped_counted = False
        for index, planned in enumerate(plan):
            if index and planned.delay:
                await asyncio.sleep(planned.delay)

            if step is Step.PRIMARY_RECOVERY:
                diagnostics.recovery_queries += 1
                if planned.query.market:
                    diagnostics.record_market(planned.query.market)
            if planned.relaxed:
                diagnostics.relaxed_attempts += 1
                if not stripped_counted and simplify_track_name(run.track.name).suffix_stripped:
                    diagnostics.suffix_strips += 1
                    stripped_counted = True
            if step in (Step.COMMUNITY_EXACT, Step.COMMUNITY_SIMPLIFIED, Step.COMMUNITY_ARTIST_ONLY):
                diagnostics.record_community_query(planned.query.text)

            candidates = await self._query(run, planned)
            scored = best_candidate(candidates, planned.target, run.rules)
            if scored is None:
                continue
            run.consider(scored, spec)
            if spec.accepts(scored):
                provider = planned.provider.get_provider_name()
                diagnostics.record_hit(provider, spec.source_tag, run.track.name, planned.query.text)
                if step is Step.PRIMARY_RECOVERY:
                    diagnostics.recovery_hits += 1
                return scored, planned
        return None

    async def _query(self, run: _Run, planned: _PlannedQuery) -> list[ProviderCandidate]:
        if run.attempts >= run.budget:
            raise _BudgetExhausted
        name = planned.provider.get_provider_name()
        run.attempts += 1
        run.by_provider[name] += 1
        run.diagnostics.record_attempt(name)
        try:
            return await planned.provider.search(planned.query)
        except (SoundMatrixError, httpx.HTTPError) as exc:
            logger.warning("catalog_query_failed", provider=name, query=planned.query.text, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "catalog_query_crashed",
                provider=name,
                query=planned.query.text,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        run.diagnostics.record_failure(name)
        return []

    # ------------------------------------------------------------------
    # Query planning
    # ------------------------------------------------------------------

    @staticmethod
    def _artist_candidates(track: TrackDescriptor) -> list[str]:
        names: list[str] = []
        for credit in track.artists:
            for name in split_artist_credit(credit):
                if name.lower() not in {n.lower() for n in names}:
                    names.append(name)
        return names

    def _plan(
        self,
        step: Step,
        track: TrackDescriptor,
        fast_mode: bool,
        diagnostics: AnalysisDiagnostics,
    ) -> list[_PlannedQuery]:
        artist = track.primary_artist
        simplified = simplify_track_name(track.name)
        has_relaxed = bool(simplified.name) and simplified.name != track.name
        cfg = self._config

        if step is Step.PRIMARY_RECOVERY:
            if self._primary is None or not self._primary.is_available():
                diagnostics.primary_recovery_disabled = True
                return []
            markets: list[str | None] = list(cfg.markets) if self._primary.partitions_by_market() else [None]
            if fast_mode:
                markets = markets[:1]
            delay = cfg.fast_query_delay if fast_mode else cfg.query_delay
            relaxed_delay = cfg.fast_relaxed_query_delay if fast_mode else cfg.relaxed_query_delay
            artists = self._artist_candidates(track)
            plan = [
                _PlannedQuery(
                    self._primary,
                    CatalogQuery(text=text, artist=name, track=track.name, market=market),
                    MatchTarget.from_track(track, artist=name),
                    delay=delay,
                )
                for name in artists
                for market in markets
                for text in self._primary.query_variants(name, track.name)
            ]
            if has_relaxed:
                plan += [
                    _PlannedQuery(
                        self._primary,
                        CatalogQuery(text=text, artist=name, track=simplified.name, market=market),
                        MatchTarget.from_track(track, title=simplified.name, artist=name),
                        delay=relaxed_delay,
                        relaxed=True,
                    )
                    for name in artists
                    for market in markets
                    for text in self._primary.relaxed_query_variants(name, simplified.name)
                ]
            return plan

        if step is Step.ALT_EXACT:
            return self._title_plan(self._alt, track, artist, relaxed=has_relaxed)
        if step is Step.ALT_BROAD:
            return self._artist_only_plan(self._alt, track, artist)
        if step is Step.COMMUNITY_EXACT:
            return self._title_plan(self._community, track, artist, relaxed=False)
        if step is Step.COMMUNITY_SIMPLIFIED:
            if not has_relaxed:
                return []
            return self._title_plan(self._community, track, artist, relaxed=False, title=simplified.name)
        if step is Step.COMMUNITY_ARTIST_ONLY:
            return self._artist_only_plan(self._community, track, artist)
        if step is Step.AGGREGATOR:
            return self._title_plan(self._aggregators, track, artist, relaxed=False)
        return []

    @staticmethod
    def _title_plan(
        providers: list[ICatalogProvider],
        track: TrackDescriptor,
        artist: str,
        *,
        relaxed: bool,
        title: str | None = None,
    ) -> list[_PlannedQuery]:
        title = title or track.name
        plan: list[_PlannedQuery] = []
        for provider in providers:
            if not provider.is_available():
                continue
            plan += [
                _PlannedQuery(
                    provider,
                    CatalogQuery(text=text, artist=artist, track=title),
                    MatchTarget.from_track(track, title=title),
                )
                for text in provider.query_variants(artist, title)
            ]
            if relaxed:
                simplified = simplify_track_name(track.name).name
                plan += [
                    _PlannedQuery(
                        provider,
                        CatalogQuery(text=text, artist=artist, track=simplified),
                        MatchTarget.from_track(track, title=simplified),
                        relaxed=True,
                    )
                    for text in provider.relaxed_query_variants(artist, simplified)
                ]
        return plan

    @staticmethod
    def _artist_only_plan(
        providers: list[ICatalogProvider], track: TrackDescriptor, artist: str
    ) -> list[_PlannedQuery]:
        return [
            _PlannedQuery(
                provider,
                CatalogQuery(text=text, artist=artist),
                MatchTarget.from_track(track, title=""),
            )
            for provider in providers
            if provider.is_available()
            for text in provider.query_variants(artist, "")
        ]

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    @staticmethod
    def _known_outcome(run: _Run, *, restored: bool, suppressed: bool) -> ResolutionOutcome:
        track = run.track
        tag = track.known_source if track.known_source is not SourceTag.NONE else SourceTag.PRIMARY_CATALOG
        run.trail.append(tag)
        run.diagnostics.record_hit(track.origin, tag, track.name)
        return ResolutionOutcome(
            audio_reference=track.known_reference,
            source_tag=tag,
            confidence=_KNOWN_CONFIDENCE.get(tag, _DEFAULT_KNOWN_CONFIDENCE),
            provider=track.origin,
            attempts=run.attempts,
            attempts_by_provider=dict(run.by_provider),
            suppressed=suppressed,
            restored=restored,
            trail=list(run.trail),
        )

    @staticmethod
    def _candidate_outcome(
        run: _Run,
        scored: CandidateScore,
        spec: StepSpec,
        *,
        suppressed: bool,
        budget_exhausted: bool = False,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            audio_reference=scored.candidate.audio_reference,
            source_tag=spec.source_tag,
            confidence=spec.confidence(scored),
            provider=scored.candidate.provider,
            attempts=run.attempts,
            attempts_by_provider=dict(run.by_provider),
            suppressed=suppressed,
            budget_exhausted=budget_exhausted,
            trail=list(run.trail),
        )

    def _exhausted_outcome(self, run: _Run) -> ResolutionOutcome:
        suppressed = run.suppressed
        if run.best_viable is not None:
            scored, spec = run.best_viable
            return self._candidate_outcome(run, scored, spec, suppressed=suppressed, budget_exhausted=True)
        if run.track.known_reference and run.withheld:
            outcome = self._known_outcome(run, restored=suppressed, suppressed=suppressed)
            return outcome.model_copy(update={"budget_exhausted": True})
        return ResolutionOutcome(
            source_tag=SourceTag.NONE,
            attempts=run.attempts,
            attempts_by_provider=dict(run.by_provider),
            suppressed=suppressed,
            budget_exhausted=True,
            trail=list(run.trail),
        )
