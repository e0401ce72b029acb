"""Text normalization utilities for track titles and artist credits.

Three concerns live here:

1. **Match normalization** -- lower-casing, punctuation stripping and
   whitespace collapsing so titles coming back from different catalogs
   ("Strobe (Radio Edit)" vs "strobe - radio edit") compare cleanly.

2. **Name simplification** -- the relaxation step applied by the
   resolution engine once exact queries have failed: parenthetical
   qualifiers are dropped and a trailing " - ... Remix/Edit/Version"
   suffix is cut off.

3. **Fuzzy matching** -- rapidfuzz ``token_sort_ratio`` helpers shared by
   candidate scoring and the catalog adapters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from rapidfuzz import fuzz

_PARENTHETICAL = re.compile(r"\([^)]*\)")
_BRACKETED = re.compile(r"\[[^\]]*\]")
_VERSION_SUFFIX = re.compile(r"remix|mixed|edit|reform|version", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SimplifiedName:
    """Result of :func:`simplify_track_name`.

    ``suffix_stripped`` is ``True`` when a dash-suffix version qualifier
    was removed; the resolver counts these in its diagnostics.
    """

    name: str
    suffix_stripped: bool = False


def simplify_track_name(name: str) -> SimplifiedName:
    """Strip parenthetical qualifiers and remix/edit dash-suffixes.

    ``"Strobe (Radio Edit)"`` -> ``"Strobe"``;
    ``"Opus - Four Tet Remix"`` -> ``"Opus"`` with ``suffix_stripped=True``;
    ``"Sun - Moon"`` is left alone because the right side is not a version
    qualifier.
    """
    if not name:
        return SimplifiedName(name="")

    simplified = _PARENTHETICAL.sub("", name)
    suffix_stripped = False
    if " - " in simplified:
        head, _, tail = simplified.partition(" - ")
        if _VERSION_SUFFIX.search(tail):
            simplified = head
            suffix_stripped = True

    simplified = _WHITESPACE.sub(" ", simplified).strip()
    return SimplifiedName(name=simplified, suffix_stripped=suffix_stripped)


def normalize_for_match(text: str | None) -> str:
    """Lower-case *text*, drop bracketed tags and punctuation, collapse spaces."""
    if not text:
        return ""
    cleaned = _BRACKETED.sub(" ", text.lower())
    cleaned = _NON_WORD.sub(" ", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def fuzzy_ratio(left: str | None, right: str | None) -> float:
    """Return the ``token_sort_ratio`` of two strings on a 0.0--1.0 scale."""
    if not left or not right:
        return 0.0
    return fuzz.token_sort_ratio(normalize_for_match(left), normalize_for_match(right)) / 100.0


# Artist credits come back as "A & B", "A feat. C", "A, B" or "A x B".
_CREDIT_SEPARATOR = re.compile(
    r"\s+&\s+|\s+feat\.?\s+|\s+ft\.?\s+|\s+featuring\s+|\s+x\s+|\s+vs\.?\s+|,\s*",
    re.IGNORECASE,
)


def split_artist_credit(raw: str | None) -> list[str]:
    """Split a multi-artist credit string into individual names.

    ``"Bicep & Hammer feat. Clara"`` -> ``["Bicep", "Hammer", "Clara"]``
    """
    if not raw:
        return []
    parts = _CREDIT_SEPARATOR.split(raw)
    return [part.strip() for part in parts if part.strip()]
