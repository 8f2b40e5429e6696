"""
Fuzzy keyword matching for inquiry questions.

Keywords are first looked up as exact substrings of the normalized text;
failing that, every word of the text that is long enough is compared with
every word of the keyword using rapidfuzz's Jaro-Winkler similarity.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from rapidfuzz.distance import JaroWinkler

DEFAULT_MIN_SIMILARITY = 0.8
DEFAULT_MIN_WORD_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")


@dataclass
class MatchResult:
    keyword: str
    matched: bool
    score: float
    matched_word: Optional[str] = None
    position: Optional[int] = None


@dataclass
class KeywordMatchSummary:
    results: List[MatchResult] = field(default_factory=list)
    matched_count: int = 0
    total_count: int = 0
    match_rate: float = 0.0

    @property
    def matched_keywords(self) -> List[str]:
        return [result.keyword for result in self.results if result.matched]


def normalize_text(text: str, case_sensitive: bool = False) -> str:
    normalized = (text or "").strip()
    if not case_sensitive:
        normalized = normalized.lower()
    return _WHITESPACE.sub(" ", normalized)


def jaro_winkler_similarity(s1: str, s2: str) -> float:
    return JaroWinkler.similarity(s1, s2, prefix_weight=0.1)


def find_best_match(
    keyword: str,
    text: str,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
    case_sensitive: bool = False,
    allow_partial_match: bool = True,
) -> MatchResult:
    normalized_keyword = normalize_text(keyword, case_sensitive)
    normalized_text = normalize_text(text, case_sensitive)

    if normalized_keyword and normalized_keyword in normalized_text:
        return MatchResult(
            keyword=keyword,
            matched=True,
            score=1.0,
            matched_word=keyword,
            position=normalized_text.index(normalized_keyword),
        )

    if not allow_partial_match:
        return MatchResult(keyword=keyword, matched=False, score=0.0)

    words = [word for word in normalized_text.split(" ") if len(word) >= min_word_length]
    keyword_words = normalized_keyword.split(" ")

    best_score = 0.0
    best_word = ""
    best_position = -1
    for word in words:
        for kw in keyword_words:
            similarity = jaro_winkler_similarity(word, kw)
            if similarity > best_score:
                best_score = similarity
                best_word = word
                best_position = normalized_text.find(word)

    matched = best_score >= min_similarity
    return MatchResult(
        keyword=keyword,
        matched=matched,
        score=round(best_score, 2),
        matched_word=best_word if matched else None,
        position=best_position if matched else None,
    )


def match_keywords(keywords: List[str], text: str, **config) -> KeywordMatchSummary:
    results = [find_best_match(keyword, text, **config) for keyword in keywords]
    matched_count = sum(1 for result in results if result.matched)
    total = len(keywords)

    return KeywordMatchSummary(
        results=results,
        matched_count=matched_count,
        total_count=total,
        match_rate=round(matched_count / total, 2) if total else 0.0,
    )

