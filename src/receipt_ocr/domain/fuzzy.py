import re
from typing import Optional, Sequence

from .normalize import fold_turkish

# Hard ceiling on top of the caller's threshold
MAX_FUZZY_SCORE = 0.3

_TOKEN_SPLIT = re.compile(r"[^a-zçğıöşü]+")


def _levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    la, lb = len(a), len(b)
    if la > lb:
        a, b = b, a
        la, lb = lb, la
    prev = list(range(la + 1))
    for j in range(1, lb + 1):
        cur = [j] + [0] * la
        bj = b[j - 1]
        for i in range(1, la + 1):
            cost = 0 if a[i - 1] == bj else 1
            cur[i] = min(cur[i - 1] + 1, prev[i] + 1, prev[i - 1] + cost)
        prev = cur
    return prev[la]


def similarity_score(a: str, b: str) -> float:
    """Edit distance scaled to [0, 1]; 0 is identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return _levenshtein(a, b) / longest


def tokenize(line: str) -> list:
    return [t for t in _TOKEN_SPLIT.split(fold_turkish(line)) if len(t) >= 3]


def fuzzy_find(line: str, vocabulary: Sequence[str], threshold: float) -> Optional[str]:
    """Return the vocabulary entry approximately present in ``line``.

    Each token of three or more letters is compared with every entry; the
    closest entry for the first token scoring under both ``threshold`` and
    :data:`MAX_FUZZY_SCORE` is returned.
    """
    if not line or not vocabulary:
        return None
    for token in tokenize(line):
        best: Optional[str] = None
        best_score = 1.0
        for entry in vocabulary:
            score = similarity_score(token, entry)
            if score < best_score:
                best, best_score = entry, score
        if best is not None and best_score < threshold and best_score < MAX_FUZZY_SCORE:
            return best
    return None
