"""Table-driven scoring of provider candidates against a target track.

Every adapter result is scored by :func:`score_candidate`, a pure function
over a tuple of :class:`ScoringRule` rows.  Each rule is a named predicate
with a point weight; the score is the sum of the weights of the rules that
fire.  Resolution steps then accept or reject the best candidate through a
:class:`StepSpec`: a minimum point total plus a set of rules of which at
least one must have fired.

Weights can be overridden per strategy from ``resolution.scoring_overrides``
in ``config.yaml`` via :func:`rules_with_overrides`.

Title rules are mutually exclusive (exact beats substring beats fuzzy), as
are the two artist rules, so one strong signal is never double-counted.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from src.interfaces.catalog_provider import ProviderCandidate
from src.models.resolution import SourceTag
from src.models.track import TrackDescriptor
from src.utils.confidence import calculate_confidence, normalize_score
from src.utils.text_normalizer import fuzzy_ratio, normalize_for_match, split_artist_credit

# Points at which a candidate's normalised score reaches 1.0.
SCORE_SCALE = 100.0

_FUZZY_TITLE_THRESHOLD = 0.85
_HIGH_POPULARITY = 70
_DERIVATIVE = re.compile(r"\b(live|cover|karaoke)\b", re.IGNORECASE)


@dataclass(frozen=True)
class MatchTarget:
    """What a candidate is compared against.

    ``title`` is empty for artist-only steps; relaxed steps pass the
    simplified name here instead of the original.
    """

    title: str
    artist: str
    catalog_id: str | None = None
    original_title: str = ""

    @classmethod
    def from_track(
        cls, track: TrackDescriptor, title: str | None = None, artist: str | None = None
    ) -> MatchTarget:
        return cls(
            title=track.name if title is None else title,
            artist=artist or track.primary_artist,
            catalog_id=track.track_id,
            original_title=track.name,
        )


# -- predicates --------------------------------------------------------------


def _title_exact(c: ProviderCandidate, t: MatchTarget) -> bool:
    return bool(t.title) and normalize_for_match(c.title) == normalize_for_match(t.title)


def _title_substring(c: ProviderCandidate, t: MatchTarget) -> bool:
    if not t.title or _title_exact(c, t):
        return False
    cand, want = normalize_for_match(c.title), normalize_for_match(t.title)
    return bool(cand and want) and (want in cand or cand in want)


def _title_fuzzy(c: ProviderCandidate, t: MatchTarget) -> bool:
    if not t.title or _title_exact(c, t) or _title_substring(c, t):
        return False
    return fuzzy_ratio(c.title, t.title) >= _FUZZY_TITLE_THRESHOLD


def _candidate_artists(c: ProviderCandidate) -> list[str]:
    names = [normalize_for_match(n) for n in split_artist_credit(c.artist)]
    if c.uploader:
        names.append(normalize_for_match(c.uploader))
    return [n for n in names if n]


def _artist_exact(c: ProviderCandidate, t: MatchTarget) -> bool:
    want = normalize_for_match(t.artist)
    return bool(want) and want in _candidate_artists(c)


def _artist_substring(c: ProviderCandidate, t: MatchTarget) -> bool:
    want = normalize_for_match(t.artist)
    if not want or _artist_exact(c, t):
        return False
    # Video and community titles often read "Artist - Title".
    haystacks = [normalize_for_match(c.artist), normalize_for_match(c.uploader), normalize_for_match(c.title)]
    return any(want in h for h in haystacks if h)


def _catalog_id_match(c: ProviderCandidate, t: MatchTarget) -> bool:
    return bool(t.catalog_id) and c.catalog_id == t.catalog_id


def _official_marker(c: ProviderCandidate, t: MatchTarget) -> bool:
    return bool(c.metadata.get("official_marker")) or "official" in c.title.lower()


def _derivative(c: ProviderCandidate, t: MatchTarget) -> bool:
    found = {m.lower() for m in _DERIVATIVE.findall(c.title)}
    if not found:
        return False
    wanted = {m.lower() for m in _DERIVATIVE.findall(t.original_title or t.title)}
    return bool(found - wanted)


@dataclass(frozen=True)
class ScoringRule:
    name: str
    weight: float
    predicate: Callable[[ProviderCandidate, MatchTarget], bool]


DEFAULT_SCORING_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("catalog_id_match", 60.0, _catalog_id_match),
    ScoringRule("title_exact", 40.0, _title_exact),
    ScoringRule("title_substring", 25.0, _title_substring),
    ScoringRule("title_fuzzy", 15.0, _title_fuzzy),
    ScoringRule("artist_exact", 30.0, _artist_exact),
    ScoringRule("artist_substring", 20.0, _artist_substring),
    ScoringRule("verified_uploader", 10.0, lambda c, t: c.verified),
    ScoringRule("official_marker", 8.0, _official_marker),
    ScoringRule("high_popularity", 5.0, lambda c, t: (c.popularity or 0) >= _HIGH_POPULARITY),
    ScoringRule("derivative_penalty", -15.0, _derivative),
)

TITLE_RULES = frozenset({"title_exact", "title_substring", "title_fuzzy"})
ARTIST_RULES = frozenset({"artist_exact", "artist_substring"})


def rules_with_overrides(
    overrides: dict[str, float] | None,
    rules: tuple[ScoringRule, ...] = DEFAULT_SCORING_RULES,
) -> tuple[ScoringRule, ...]:
    """Return *rules* with weights replaced by name from *overrides*."""
    if not overrides:
        return rules
    return tuple(replace(r, weight=overrides[r.name]) if r.name in overrides else r for r in rules)


@dataclass(frozen=True)
class CandidateScore:
    candidate: ProviderCandidate
    points: float
    matched: frozenset[str] = field(default_factory=frozenset)

    @property
    def viable(self) -> bool:
        """Playable and matching on at least one title or artist rule."""
        return bool(self.candidate.audio_reference) and bool(self.matched & (TITLE_RULES | ARTIST_RULES))


def score_candidate(
    candidate: ProviderCandidate,
    target: MatchTarget,
    rules: tuple[ScoringRule, ...] = DEFAULT_SCORING_RULES,
) -> CandidateScore:
    matched = frozenset(rule.name for rule in rules if rule.predicate(candidate, target))
    points = sum(rule.weight for rule in rules if rule.name in matched)
    return CandidateScore(candidate=candidate, points=points, matched=matched)


@dataclass(frozen=True)
class StepSpec:
    """Acceptance rule and confidence for one resolution step."""

    source_tag: SourceTag
    base_confidence: float
    min_score: float = 0.0
    required_any: frozenset[str] = frozenset()

    def accepts(self, score: CandidateScore) -> bool:
        if not score.candidate.audio_reference:
            return False
        if self.required_any and not (score.matched & self.required_any):
            return False
        return score.points >= self.min_score

    def confidence(self, score: CandidateScore) -> float:
        return calculate_confidence([self.base_confidence, normalize_score(score.points, SCORE_SCALE)])


def best_candidate(
    candidates: list[ProviderCandidate],
    target: MatchTarget,
    rules: tuple[ScoringRule, ...] = DEFAULT_SCORING_RULES,
) -> CandidateScore | None:
    """Score every playable candidate and return the highest, ties to provider order."""
    best: CandidateScore | None = None
    for candidate in candidates:
        if not candidate.audio_reference:
            continue
        scored = score_candidate(candidate, target, rules)
        if best is None or scored.points > best.points:
            best = scored
    return best
