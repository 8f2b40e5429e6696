from __future__ import annotations

from smile.backend.services.keywords import (
    find_best_match,
    jaro_winkler_similarity,
    match_keywords,
    normalize_text,
)


def test_jaro_winkler_reference_values() -> None:
    assert jaro_winkler_similarity("martha", "martha") == 1.0
    assert abs(jaro_winkler_similarity("martha", "marhta") - 0.9611) < 0.001
    assert jaro_winkler_similarity("", "abc") == 0.0
    assert jaro_winkler_similarity("abc", "xyz") == 0.0


def test_normalize_text_collapses_whitespace() -> None:
    assert normalize_text("  Cell   Division\n") == "cell division"
    assert normalize_text("Cell", case_sensitive=True) == "Cell"


def test_exact_substring_match_wins() -> None:
    result = find_best_match("photosynthesis", "How does Photosynthesis work?")

    assert result.matched
    assert result.score == 1.0
    assert result.position == 9


def test_fuzzy_match_tolerates_typos() -> None:
    result = find_best_match("photosynthesis", "how does photosynthsis work")

    assert result.matched
    assert result.matched_word == "photosynthsis"
    assert result.score >= 0.8


def test_short_words_are_ignored() -> None:
    result = find_best_match("cat", "a ct")

    assert not result.matched
    assert result.score == 0.0


def test_partial_matching_can_be_disabled() -> None:
    result = find_best_match("photosynthesis", "photosynthsis", allow_partial_match=False)
    assert not result.matched


def test_match_keywords_summary() -> None:
    summary = match_keywords(["cell", "energy", "mitosis"], "Cells use energy")

    assert summary.matched_count == 2
    assert summary.total_count == 3
    assert summary.match_rate == 0.67
    assert summary.matched_keywords == ["cell", "energy"]


def test_match_keywords_empty_pool() -> None:
    summary = match_keywords([], "anything")
    assert summary.match_rate == 0.0
    assert summary.matched_keywords == []
