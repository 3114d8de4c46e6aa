"""
Objective text metrics for model summaries
"""
import math
import re
from typing import List, Union

from core.entities import ModelSummary, SummaryMetrics

_SENTENCE_RE = re.compile(r"[.!?]+")
_WORD_RE = re.compile(r"\s+")
_NON_ALPHA_RE = re.compile(r"[^a-z]")
_SILENT_END_RE = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_LEADING_Y_RE = re.compile(r"^y")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]{1,2}")

READABILITY_TARGET = 65


def round_half_up(value: float, digits: int = 0) -> Union[int, float]:
    """Round halves upward (2.5 -> 3) instead of to the nearest even digit."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5)
    if digits == 0:
        return rounded
    return rounded / factor


def split_words(text: str) -> List[str]:
    return [w for w in _WORD_RE.split(text) if w]


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_RE.split(text) if s.strip()]


def count_syllables(word: str) -> int:
    """Heuristic syllable count, minimum 1."""
    word = _NON_ALPHA_RE.sub("", word.lower())
    if len(word) <= 3:
        return 1

    word = _SILENT_END_RE.sub("", word)
    word = _LEADING_Y_RE.sub("", word)

    groups = _VOWEL_GROUP_RE.findall(word)
    return len(groups) if groups else 1


def readability_score(text: str) -> float:
    """
    Flesch Reading Ease, rounded and clamped to [0, 100].
    Higher is easier to read; empty text scores 0.
    """
    words = split_words(text)
    sentences = split_sentences(text)
    if not words or not sentences:
        return 0

    syllables = sum(count_syllables(w) for w in words)
    words_per_sentence = len(words) / len(sentences)
    syllables_per_word = syllables / len(words)

    score = 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word
    return max(0, min(100, round_half_up(score)))


def calculate_metrics(summary: str, highlights: List[str], processing_time_ms: int) -> SummaryMetrics:
    return SummaryMetrics(
        word_count=len(split_words(summary)),
        sentence_count=len(split_sentences(summary)),
        readability_score=readability_score(summary),
        highlight_count=len(highlights),
        processing_time_ms=processing_time_ms,
    )


def auto_compare(summary_a: ModelSummary, summary_b: ModelSummary) -> str:
    """
    Score two summaries on readability, length, highlights and speed.
    Returns "a", "b" or "tie".
    """
    a, b = summary_a.metrics, summary_b.metrics
    score_a = score_b = 0

    distance_a = abs(READABILITY_TARGET - a.readability_score)
    distance_b = abs(READABILITY_TARGET - b.readability_score)
    if distance_a < distance_b:
        score_a += 1
    elif distance_b < distance_a:
        score_b += 1

    # Concise but not too short
    in_range_a = 40 <= a.word_count <= 80
    in_range_b = 40 <= b.word_count <= 80
    if in_range_a and not in_range_b:
        score_a += 1
    elif in_range_b and not in_range_a:
        score_b += 1

    if a.highlight_count > b.highlight_count:
        score_a += 1
    elif b.highlight_count > a.highlight_count:
        score_b += 1

    if a.processing_time_ms < b.processing_time_ms:
        score_a += 1
    elif b.processing_time_ms < a.processing_time_ms:
        score_b += 1

    if score_a > score_b:
        return "a"
    if score_b > score_a:
        return "b"
    return "tie"
