"""
String-similarity scoring used to pick the best provider result for a
(title, author) target.

The point values and thresholds here are tuned against the confidence tiers
in core.merge (high >= 70, medium >= 40); keep them in sync.
"""

import re
from typing import List, Optional, Tuple

from shelf_catalog.schemas import ProviderBook

_NIQQUD = re.compile(r"[\u0591-\u05C7]")
_PUNCT = re.compile(r"[^\w\s\u0590-\u05FF]")
_SPACES = re.compile(r"\s+")


def normalize_string(value: Optional[str]) -> str:
    if not value:
        return ""
    text = value.lower()
    text = _NIQQUD.sub("", text)
    text = _PUNCT.sub("", text)
    return _SPACES.sub(" ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """(max_len - edit_distance) / max_len over normalized strings."""
    na, nb = normalize_string(a), normalize_string(b)
    if not na and not nb:
        return 1.0
    longest = max(len(na), len(nb))
    return (longest - levenshtein_distance(na, nb)) / longest


def author_similarity(a: Optional[str], b: Optional[str]) -> float:
    na, nb = normalize_string(a), normalize_string(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        return 0.85

    tokens_a, tokens_b = na.split(" "), nb.split(" ")
    # last token is treated as the surname
    if tokens_a[-1] == tokens_b[-1]:
        return 0.9
    if similarity(tokens_a[-1], tokens_b[-1]) > 0.8:
        return 0.8

    shared = 0
    for ta in tokens_a:
        if len(ta) <= 1:
            continue
        if any(len(tb) > 1 and similarity(ta, tb) > 0.85 for tb in tokens_b):
            shared += 1
    if shared:
        return 0.6 + 0.15 * shared

    return similarity(na, nb)


def _title_points(target: str, candidate: str) -> int:
    if not target or not candidate:
        return 0
    if target == candidate:
        return 60
    if target in candidate or candidate in target:
        return 50
    ratio = similarity(target, candidate)
    if ratio > 0.8:
        return 45
    if ratio > 0.6:
        return 30
    if ratio > 0.4:
        return 15
    return 0


def _author_points(target: str, candidate: str) -> int:
    if not target or not candidate:
        return 0
    sim = author_similarity(target, candidate)
    if sim > 0.9:
        return 30
    if sim > 0.7:
        return 25
    if sim > 0.5:
        return 15
    if sim > 0.3:
        return 5
    return 0


def score_result(result: ProviderBook, title: str, author: Optional[str] = None) -> int:
    """Additive match score for one provider result. Not capped."""
    score = _title_points(normalize_string(title), normalize_string(result.title))
    score += _author_points(author or "", result.author or "")

    if result.isbn:
        score += 10
    if result.cover_image_url:
        score += 5
    if result.description and len(result.description) > 100:
        score += 5
    return score


def find_best_match(
    results: List[ProviderBook],
    title: str,
    author: Optional[str] = None,
) -> Tuple[Optional[ProviderBook], int]:
    """Return the highest-scoring result and its score; the first maximum wins."""
    if not results:
        return None, 0

    best, best_score = results[0], score_result(results[0], title, author)
    for result in results[1:]:
        score = score_result(result, title, author)
        if score > best_score:
            best, best_score = result, score
    return best, best_score
