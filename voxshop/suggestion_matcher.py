"""Fuzzy item-name suggestions.

Ranks candidate names against partial or misspelled input. Scoring uses
strict tiers: exact match, prefix, substring, then normalized
Levenshtein similarity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rapidfuzz.distance import Levenshtein

from voxshop.models import (
    MatchReason,
    SuggestionCandidate,
    SuggestionMatch,
    SuggestionSource,
    normalize_text,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from voxshop.models import HistoryEntry, Item, Staple

MIN_QUERY_LENGTH = 2

_EXACT_SCORE = 1.0
_PREFIX_SCORE = 0.95
_INCLUDES_SCORE = 0.85


def levenshtein(a: str, b: str) -> int:
    """Compute the edit distance between two strings.

    Insertions, deletions and substitutions each cost 1.

    Args:
        a: First string.
        b: Second string.

    Returns:
        Minimum number of single-character edits turning ``a`` into ``b``.
    """
    return int(Levenshtein.distance(a, b))


def _score(query: str, candidate: str) -> tuple[float, MatchReason]:
    """Score one normalized candidate against a normalized query."""
    if not query or not candidate:
        return 0.0, MatchReason.FUZZY
    if query == candidate:
        return _EXACT_SCORE, MatchReason.EXACT
    if candidate.startswith(query):
        return _PREFIX_SCORE, MatchReason.PREFIX
    if query in candidate:
        return _INCLUDES_SCORE, MatchReason.INCLUDES

    return Levenshtein.normalized_similarity(query, candidate), MatchReason.FUZZY


def get_suggestion_matches(
    query: str,
    candidates: Iterable[SuggestionCandidate],
    limit: int = 5,
    min_score: float = 0.6,
) -> list[SuggestionMatch]:
    """Rank candidates against a query.

    Queries shorter than two characters never match. Candidates are
    deduplicated by normalized name (first occurrence wins). Ties keep
    input order.

    Args:
        query: Partial or misspelled item name.
        candidates: Names to rank.
        limit: Maximum number of matches returned.
        min_score: Matches scoring below this are dropped.

    Returns:
        Matches sorted by descending score.
    """
    normalized_query = normalize_text(query)
    if len(normalized_query) < MIN_QUERY_LENGTH:
        return []

    seen: set[str] = set()
    matches: list[SuggestionMatch] = []
    for candidate in candidates:
        normalized_name = normalize_text(candidate.name)
        if not normalized_name or normalized_name in seen:
            continue
        seen.add(normalized_name)

        score, reason = _score(normalized_query, normalized_name)
        if score >= min_score:
            matches.append(
                SuggestionMatch(candidate=candidate, score=score, reason=reason)
            )

    matches.sort(key=lambda match: match.score, reverse=True)
    return matches[:limit]


def get_best_suggestion(
    query: str,
    candidates: Iterable[SuggestionCandidate],
    min_score: float = 0.75,
) -> SuggestionMatch | None:
    """Return the single best match, or None.

    The result may equal the query itself; see :func:`did_you_mean`.
    """
    matches = get_suggestion_matches(query, candidates, limit=1, min_score=min_score)
    return matches[0] if matches else None


def did_you_mean(
    query: str,
    candidates: Iterable[SuggestionCandidate],
    min_score: float = 0.84,
) -> SuggestionMatch | None:
    """Return a correction for the query, never the query itself."""
    best = get_best_suggestion(query, candidates, min_score=min_score)
    if best is None:
        return None
    if normalize_text(best.candidate.name) == normalize_text(query):
        return None
    return best


def suggest_for_input(
    query: str,
    candidates: Iterable[SuggestionCandidate],
    limit: int = 4,
    min_score: float = 0.68,
) -> list[SuggestionMatch]:
    """Return autocomplete matches for an input box, excluding the input."""
    normalized_query = normalize_text(query)
    return [
        match
        for match in get_suggestion_matches(query, candidates, limit, min_score)
        if normalize_text(match.candidate.name) != normalized_query
    ]


def build_candidates(
    items: Sequence[Item],
    history: Sequence[HistoryEntry] = (),
    staples: Sequence[Staple] = (),
) -> list[SuggestionCandidate]:
    """Assemble suggestion candidates from the list, history and staples.

    Earlier sources win when the same name appears more than once.

    Args:
        items: Items on the active list.
        history: Item history entries.
        staples: Saved staples.

    Returns:
        Deduplicated candidates in source order.
    """
    by_name: dict[str, SuggestionCandidate] = {}

    def _add(candidate: SuggestionCandidate) -> None:
        normalized = normalize_text(candidate.name)
        if normalized and normalized not in by_name:
            by_name[normalized] = candidate

    for item in items:
        _add(
            SuggestionCandidate(
                name=item.text,
                quantity=item.quantity,
                unit=item.unit,
                source=SuggestionSource.LIST,
            )
        )
    for entry in history:
        _add(
            SuggestionCandidate(
                name=entry.name,
                quantity=entry.quantity,
                unit=entry.unit,
                source=SuggestionSource.HISTORY,
            )
        )
    for staple in staples:
        _add(
            SuggestionCandidate(
                name=staple.name,
                quantity=staple.quantity,
                unit=staple.unit,
                source=SuggestionSource.STAPLE,
            )
        )

    return list(by_name.values())
