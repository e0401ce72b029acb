"""Derived fields of an artist profile.

Pure functions over track profiles and artist metadata:

- feature averages across a track matrix
- genre mapping, in priority order: known genres, audio-feature rules,
  artist-name heuristics
- recent sound evolution (recent releases vs. catalog top tracks)
- metadata-only feature inference for genre-only partial results
- listener sound preferences (average / variance / range per feature)

Nothing here touches I/O, so the lifecycle manager can recompute every
derived field on each merge.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from src.models.profile import GenreMapping, GenreSource, RecentEvolution
from src.models.track import FeatureVector, TrackProfile

SUMMARY_FEATURES: tuple[str, ...] = ("energy", "danceability", "valence", "tempo", "spectral_centroid")
PREFERENCE_FEATURES: tuple[str, ...] = ("danceability", "energy", "valence", "tempo", "spectral_centroid")

_MAX_KNOWN_GENRES = 5
_MAX_INFERRED_GENRES = 3

# Checked in order; first hit wins.
_NAME_GENRES: tuple[tuple[tuple[str, ...], list[str]], ...] = (
    (
        (
            "deadmau5", "skrillex", "calvin harris", "tiesto", "david guetta",
            "armin van buuren", "martin garrix", "diplo", "zedd", "marshmello",
            "fisher", "ferry corsten", "dvbbs", "rezz", "porter robinson",
            "richie hawtin", "tiga", "above & beyond", "eric prydz",
            "swedish house mafia", "axwell", "steve angello", "sebastian ingrosso",
        ),
        ["edm", "electronic", "dance"],
    ),
    (
        (
            "metallica", "iron maiden", "black sabbath", "suffocation",
            "killswitch engage", "parkway drive", "beartooth", "anvil",
        ),
        ["rock", "metal"],
    ),
    (("wu-tang clan", "run the jewels", "big sean", "russ"), ["hip-hop", "rap"]),
    (("coldplay", "shania twain", "luke bryan", "thomas rhett"), ["pop"]),
    (("pup", "jeff rosenstock", "kurt vile", "tripping daisy", "mest"), ["indie", "alternative"]),
)

# tempo (bpm), energy, danceability
GENRE_FEATURE_TABLE: dict[str, dict[str, float]] = {
    "house": {"tempo": 128, "energy": 0.8, "danceability": 0.9},
    "techno": {"tempo": 130, "energy": 0.9, "danceability": 0.8},
    "trance": {"tempo": 132, "energy": 0.8, "danceability": 0.7},
    "dubstep": {"tempo": 140, "energy": 0.9, "danceability": 0.8},
    "drum and bass": {"tempo": 174, "energy": 0.9, "danceability": 0.7},
    "rock": {"tempo": 120, "energy": 0.7, "danceability": 0.4},
    "pop": {"tempo": 110, "energy": 0.6, "danceability": 0.6},
    "hip hop": {"tempo": 90, "energy": 0.6, "danceability": 0.8},
    "jazz": {"tempo": 100, "energy": 0.4, "danceability": 0.3},
}
_DJ_NAME_FEATURES = {"tempo": 128, "energy": 0.8, "danceability": 0.9}
_DEFAULT_INFERRED = {"tempo": 120.0, "energy": 0.5, "danceability": 0.5, "valence": 0.5}
_INFERENCE_CONFIDENCE = 0.3


def _vectors(items: Iterable[TrackProfile | FeatureVector]) -> list[FeatureVector]:
    return [i.features if isinstance(i, TrackProfile) else i for i in items]


def average_features(
    items: Iterable[TrackProfile | FeatureVector],
    keys: Sequence[str] = SUMMARY_FEATURES,
) -> dict[str, float]:
    """Mean of each feature in *keys* over the vectors that carry it."""
    vectors = _vectors(items)
    averages: dict[str, float] = {}
    for key in keys:
        values = [v.features[key] for v in vectors if key in v.features]
        if values:
            averages[key] = sum(values) / len(values)
    return averages


def infer_genres_from_features(avg: dict[str, float]) -> list[str]:
    """Rule-based genre guess from averaged audio features (max three)."""
    energy = avg.get("energy")
    tempo = avg.get("tempo")
    dance = avg.get("danceability")
    valence = avg.get("valence")
    if not energy and not tempo and not dance:
        return []

    def above(value: float | None, bound: float) -> bool:
        return value is not None and value > bound

    def below(value: float | None, bound: float) -> bool:
        return value is not None and value < bound

    genres: list[str] = []
    if above(energy, 0.75) and above(tempo, 125) and above(dance, 0.65):
        genres += ["edm", "electronic", "dance"]
    elif above(energy, 0.7) and above(tempo, 120):
        genres += ["electronic", "dance"]
    if above(tempo, 115) and below(tempo, 135) and above(dance, 0.7):
        genres += ["house", "techno"]
    if above(tempo, 130) and above(energy, 0.8) and above(valence, 0.6):
        genres.append("trance")
    if above(energy, 0.8) and above(tempo, 140):
        genres += ["dubstep", "bass"]
    if above(energy, 0.6) and above(dance, 0.7) and above(valence, 0.5):
        genres += ["pop", "dance-pop"]
    if below(valence, 0.4) and below(energy, 0.6):
        genres += ["indie", "alternative"]
    if below(tempo, 100) and below(energy, 0.4):
        genres += ["ambient", "downtempo"]
    if above(tempo, 80) and below(tempo, 110) and above(energy, 0.6):
        genres += ["hip-hop", "rap"]

    return list(dict.fromkeys(genres))[:_MAX_INFERRED_GENRES]


def infer_genres_from_name(artist_name: str) -> list[str]:
    name = artist_name.lower()
    for artists, genres in _NAME_GENRES:
        if any(a in name for a in artists):
            return list(genres)
    return []


def derive_genre_mapping(
    known_genres: Sequence[str],
    profiles: Sequence[TrackProfile],
    artist_name: str,
) -> GenreMapping:
    if known_genres:
        return GenreMapping(
            genres=list(known_genres)[:_MAX_KNOWN_GENRES], source=GenreSource.KNOWN, confidence=1.0
        )
    inferred = infer_genres_from_features(average_features(profiles)) if profiles else []
    if inferred:
        return GenreMapping(genres=inferred, source=GenreSource.AUDIO_ANALYSIS, confidence=0.8)
    by_name = infer_genres_from_name(artist_name)
    if by_name:
        return GenreMapping(genres=by_name, source=GenreSource.NAME_INFERENCE, confidence=0.6)
    return GenreMapping()


def infer_features_from_genres(genres: Sequence[str], artist_name: str = "") -> dict[str, float]:
    """Metadata-only feature estimate for artists with no analysable audio.

    The first genre containing a table key wins; failing that, artist names
    containing ``dj`` or ``remix`` get club-music defaults.
    """
    matched: dict[str, float] = {}
    for genre in genres:
        lowered = genre.lower()
        hit = next((f for key, f in GENRE_FEATURE_TABLE.items() if key in lowered), None)
        if hit:
            matched = hit
            break
    if not matched:
        lowered_name = artist_name.lower()
        if "dj" in lowered_name or "remix" in lowered_name:
            matched = _DJ_NAME_FEATURES

    inferred = {**_DEFAULT_INFERRED, **{k: float(v) for k, v in matched.items()}}
    inferred["confidence"] = _INFERENCE_CONFIDENCE
    return inferred


def recent_evolution(profiles: Sequence[TrackProfile]) -> RecentEvolution:
    recent = [p for p in profiles if p.is_recent_release]
    top = [p for p in profiles if not p.is_recent_release]
    if not recent or not top:
        return RecentEvolution(recent_tracks_count=len(recent), top_tracks_count=len(top))

    recent_avg = average_features(recent)
    top_avg = average_features(top)

    def delta(key: str) -> float | None:
        if key in recent_avg and key in top_avg:
            return recent_avg[key] - top_avg[key]
        return None

    return RecentEvolution(
        status="detected",
        energy_change=delta("energy"),
        danceability_change=delta("danceability"),
        valence_change=delta("valence"),
        tempo_change=delta("tempo"),
        recent_tracks_count=len(recent),
        top_tracks_count=len(top),
    )


def sound_preferences(vectors: Iterable[FeatureVector]) -> dict[str, dict[str, object]]:
    """Per-feature ``{average, variance, range}`` over a listener's tracks."""
    vectors = list(vectors)
    preferences: dict[str, dict[str, object]] = {}
    for key in PREFERENCE_FEATURES:
        values = [v.features[key] for v in vectors if key in v.features]
        if not values:
            continue
        mean = sum(values) / len(values)
        preferences[key] = {
            "average": mean,
            "variance": sum((x - mean) ** 2 for x in values) / len(values),
            "range": [min(values), max(values)],
        }
    return preferences
