"""Tests for voxshop.suggestion_matcher module."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from voxshop.models import (
    HistoryEntry,
    Item,
    MatchReason,
    Staple,
    SuggestionCandidate,
    SuggestionSource,
)
from voxshop.suggestion_matcher import (
    build_candidates,
    did_you_mean,
    get_best_suggestion,
    get_suggestion_matches,
    levenshtein,
    suggest_for_input,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _candidates(*names: str) -> list[SuggestionCandidate]:
    return [SuggestionCandidate(name=name) for name in names]


# ---------------------------------------------------------------------------
# Levenshtein
# ---------------------------------------------------------------------------


class TestLevenshtein:
    """Tests for levenshtein."""

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ("", "", 0),
            ("milk", "milk", 0),
            ("", "abc", 3),
            ("abc", "", 3),
            ("mlk", "milk", 1),
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
        ],
    )
    def test_distances(self, a: str, b: str, expected: int) -> None:
        """Test known edit distances."""
        assert levenshtein(a, b) == expected

    def test_symmetric(self) -> None:
        """Test distance does not depend on argument order."""
        assert levenshtein("bread", "beard") == levenshtein("beard", "bread")


# ---------------------------------------------------------------------------
# Scoring tiers
# ---------------------------------------------------------------------------


class TestGetSuggestionMatches:
    """Tests for get_suggestion_matches."""

    def test_exact_match(self) -> None:
        """Test an exact match scores 1.0."""
        matches = get_suggestion_matches("Milk", _candidates("milk"))
        assert matches[0].score == 1.0
        assert matches[0].reason is MatchReason.EXACT

    def test_prefix_match(self) -> None:
        """Test a prefix scores 0.95."""
        matches = get_suggestion_matches("mil", _candidates("milk"))
        assert matches[0].score == 0.95
        assert matches[0].reason is MatchReason.PREFIX

    def test_includes_match(self) -> None:
        """Test a substring scores 0.85."""
        matches = get_suggestion_matches("ilk", _candidates("milk"))
        assert matches[0].score == 0.85
        assert matches[0].reason is MatchReason.INCLUDES

    def test_fuzzy_match(self) -> None:
        """Test a misspelling scores by normalized edit distance."""
        matches = get_suggestion_matches("mlk", _candidates("milk"))
        assert matches[0].score == pytest.approx(0.75)
        assert matches[0].reason is MatchReason.FUZZY

    def test_fuzzy_score_uses_longer_length(self) -> None:
        """Test similarity divides the distance by the longer name."""
        matches = get_suggestion_matches("bananna", _candidates("banana"))
        assert matches[0].score == pytest.approx(1 - 1 / 7)

    def test_short_query_returns_nothing(self) -> None:
        """Test queries under two characters never match."""
        assert get_suggestion_matches("m", _candidates("milk")) == []
        assert get_suggestion_matches("  ", _candidates("milk")) == []

    def test_below_min_score_dropped(self) -> None:
        """Test weak fuzzy matches are filtered out."""
        assert get_suggestion_matches("xyz", _candidates("milk")) == []

    def test_sorted_by_score(self) -> None:
        """Test results are ordered best first."""
        matches = get_suggestion_matches(
            "milk", _candidates("oat milk", "milkshake", "milk")
        )
        assert [m.candidate.name for m in matches] == [
            "milk",
            "milkshake",
            "oat milk",
        ]

    def test_ties_keep_input_order(self) -> None:
        """Test equal scores keep their candidate order."""
        matches = get_suggestion_matches("ch", _candidates("cheese", "chips"))
        assert [m.candidate.name for m in matches] == ["cheese", "chips"]

    def test_dedup_by_normalized_name(self) -> None:
        """Test duplicate names only appear once, first occurrence wins."""
        candidates = [
            SuggestionCandidate(name="Milk", source=SuggestionSource.LIST),
            SuggestionCandidate(name="milk ", source=SuggestionSource.HISTORY),
        ]
        matches = get_suggestion_matches("milk", candidates)
        assert len(matches) == 1
        assert matches[0].candidate.source is SuggestionSource.LIST

    def test_limit(self) -> None:
        """Test the result size is capped."""
        matches = get_suggestion_matches(
            "ch", _candidates("cheese", "chips", "chicken", "chard"), limit=2
        )
        assert len(matches) == 2


class TestBestAndDidYouMean:
    """Tests for get_best_suggestion and did_you_mean."""

    def test_best_suggestion(self) -> None:
        """Test the best match is returned at the default threshold."""
        best = get_best_suggestion("mlk", _candidates("milk", "bread"))
        assert best is not None
        assert best.candidate.name == "milk"

    def test_best_suggestion_none(self) -> None:
        """Test None when nothing clears the threshold."""
        assert get_best_suggestion("zzzz", _candidates("milk")) is None

    def test_did_you_mean_corrects_typo(self) -> None:
        """Test a close misspelling gets a correction."""
        match = did_you_mean("bananna", _candidates("banana"))
        assert match is not None
        assert match.candidate.name == "banana"

    def test_did_you_mean_threshold_is_stricter(self) -> None:
        """Test a 0.75 similarity is not enough for a correction."""
        assert did_you_mean("mlk", _candidates("milk")) is None

    def test_did_you_mean_never_returns_query(self) -> None:
        """Test an exact match is not offered as a correction."""
        assert did_you_mean("Milk", _candidates("milk")) is None


class TestSuggestForInput:
    """Tests for suggest_for_input."""

    def test_excludes_the_query(self) -> None:
        """Test the typed text itself is not suggested."""
        matches = suggest_for_input("milk", _candidates("milk", "milkshake"))
        assert [m.candidate.name for m in matches] == ["milkshake"]

    def test_default_limit_is_four(self) -> None:
        """Test at most four suggestions are returned."""
        names = ("cheese", "chips", "chicken", "chard", "cherries")
        assert len(suggest_for_input("ch", _candidates(*names))) == 4


class TestBuildCandidates:
    """Tests for build_candidates."""

    def test_sources_and_precedence(self) -> None:
        """Test list items win over history, history over staples."""
        items = [Item(text="Milk", quantity=2, unit="gallons")]
        history = [
            HistoryEntry(name="milk", last_added_at=NOW),
            HistoryEntry(name="eggs", quantity=12, unit="count", last_added_at=NOW),
        ]
        staples = [Staple(name="eggs"), Staple(name="bread")]

        candidates = build_candidates(items, history, staples)

        assert [(c.name, c.source) for c in candidates] == [
            ("Milk", SuggestionSource.LIST),
            ("eggs", SuggestionSource.HISTORY),
            ("bread", SuggestionSource.STAPLE),
        ]
        assert candidates[0].quantity == 2
        assert candidates[1].unit == "count"

    def test_empty_sources(self) -> None:
        """Test no sources produce no candidates."""
        assert build_candidates([]) == []
