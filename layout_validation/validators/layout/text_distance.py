#!/usr/bin/env python3
"""
String similarity primitives.

Used to decide whether an element's text is "the same" across snapshots.
``text_similarity`` is the composite the matcher uses; the individual
metrics are exposed for callers (and the accessibility matcher) that need
a specific notion of closeness.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\s]")

# text_similarity() composite weights
LENGTH_RATIO_WEIGHT = 0.3
SUBSTRING_RATIO_WEIGHT = 0.3
LEVENSHTEIN_WEIGHT = 0.4
NORMALIZED_MATCH_SCORE = 0.95

# fuzzy_match() composite weights
FUZZY_WEIGHTS = {
    "levenshtein": 0.3,
    "jaro_winkler": 0.3,
    "dice": 0.2,
    "token_jaccard": 0.2,
}


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert/delete/substitute, unit costs)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def normalized_levenshtein(a: str, b: str) -> float:
    """Edit distance divided by the longer length, in [0, 1]."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return levenshtein_distance(a, b) / longest


def jaro_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    window = max(0, max(len(a), len(b)) // 2 - 1)
    matched_a = [False] * len(a)
    matched_b = [False] * len(b)
    matches = 0

    for i, char in enumerate(a):
        start = max(0, i - window)
        end = min(i + window + 1, len(b))
        for j in range(start, end):
            if not matched_b[j] and b[j] == char:
                matched_a[i] = matched_b[j] = True
                matches += 1
                break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(a):
        if not matched_a[i]:
            continue
        while not matched_b[k]:
            k += 1
        if char != b[k]:
            transpositions += 1
        k += 1

    return (
        matches / len(a) + matches / len(b) + (matches - transpositions / 2) / matches
    ) / 3


def jaro_winkler_similarity(a: str, b: str, prefix_scale: float = 0.1) -> float:
    """Jaro similarity boosted for a common prefix of up to four characters."""
    jaro = jaro_similarity(a, b)
    prefix = 0
    for char_a, char_b in zip(a[:4], b[:4]):
        if char_a != char_b:
            break
        prefix += 1
    return jaro + prefix * prefix_scale * (1 - jaro)


def _bigrams(text: str) -> list[str]:
    return [text[i : i + 2] for i in range(len(text) - 1)]


def dice_coefficient(a: str, b: str) -> float:
    """Sorensen-Dice over character bigrams (multiset)."""
    if a == b:
        return 1.0
    bigrams_a = _bigrams(a)
    bigrams_b = _bigrams(b)
    if not bigrams_a or not bigrams_b:
        return 0.0

    remaining: dict[str, int] = {}
    for bigram in bigrams_b:
        remaining[bigram] = remaining.get(bigram, 0) + 1
    overlap = 0
    for bigram in bigrams_a:
        if remaining.get(bigram, 0) > 0:
            remaining[bigram] -= 1
            overlap += 1
    return 2 * overlap / (len(bigrams_a) + len(bigrams_b))


def longest_common_subsequence(a: str, b: str) -> int:
    if not a or not b:
        return 0
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1] + 1)
            else:
                current.append(max(previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest contiguous run shared by both strings."""
    if not a or not b:
        return 0
    best = 0
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0] * (len(b) + 1)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1] + 1
                best = max(best, current[j])
        previous = current
    return best


def token_jaccard(a: str, b: str) -> float:
    tokens_a = set(normalize_text(a).split())
    tokens_b = set(normalize_text(b).split())
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def text_similarity(a: str | None, b: str | None) -> float:
    """
    Composite text similarity in [0, 1].

    Exact equality short-circuits to 1.0 and equality after normalization
    to 0.95. Otherwise blends the length ratio, the longest-common-substring
    ratio and normalized Levenshtein closeness.

    Missing text on both sides counts as equal; missing on one side only
    counts as completely different.
    """
    a = a or ""
    b = b or ""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if normalize_text(a) == normalize_text(b):
        return NORMALIZED_MATCH_SCORE

    longest = max(len(a), len(b))
    length_ratio = min(len(a), len(b)) / longest
    substring_ratio = longest_common_substring(a, b) / longest
    levenshtein_score = 1.0 - levenshtein_distance(a, b) / longest
    return (
        LENGTH_RATIO_WEIGHT * length_ratio
        + SUBSTRING_RATIO_WEIGHT * substring_ratio
        + LEVENSHTEIN_WEIGHT * levenshtein_score
    )


def fuzzy_match(a: str, b: str, threshold: float = 0.8) -> tuple[bool, float]:
    """
    Blend four metrics over normalized text and compare against ``threshold``.

    Returns:
        Tuple of (is_match, score)
    """
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if norm_a == norm_b:
        return True, 1.0

    score = (
        FUZZY_WEIGHTS["levenshtein"] * (1.0 - normalized_levenshtein(norm_a, norm_b))
        + FUZZY_WEIGHTS["jaro_winkler"] * jaro_winkler_similarity(norm_a, norm_b)
        + FUZZY_WEIGHTS["dice"] * dice_coefficient(norm_a, norm_b)
        + FUZZY_WEIGHTS["token_jaccard"] * token_jaccard(norm_a, norm_b)
    )
    return score >= threshold, score


__all__ = [
    "normalize_text",
    "levenshtein_distance",
    "normalized_levenshtein",
    "jaro_similarity",
    "jaro_winkler_similarity",
    "dice_coefficient",
    "longest_common_subsequence",
    "longest_common_substring",
    "token_jaccard",
    "text_similarity",
    "fuzzy_match",
]
