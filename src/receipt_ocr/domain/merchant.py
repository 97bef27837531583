"""Business-name block resolution.

Receipts print the merchant as one to four upper-case lines near the top,
usually ending in a legal-entity suffix (A.Ş., LTD. ŞTİ., ...) and followed by
the address and the tax id (VKN). The resolver scores the lines around each
suffix, merges a block from the best one and cleans it up.
"""

import re
from typing import List, Optional, Sequence

from ..logging import get_logger
from .patterns import RECEIPT_PATTERNS, ReceiptPatterns, matches_any

LOG = get_logger("merchant")

MAX_LOOKBACK = 3
MAX_BLOCK_LINES = 4
ANCHOR_PROXIMITY = 5
FALLBACK_SCAN_LINES = 10

_NON_NAME_CHARS = re.compile(r"[^A-ZÇĞİÖŞÜ\s]")
_NON_BLOCK_CHARS = re.compile(r"[^A-ZÇĞİÖŞÜ\s&.,]")


def _is_numeric_or_date(text: str, patterns: ReceiptPatterns) -> bool:
    return bool(patterns.digits_only.search(text) or patterns.date_only.search(text))


def _is_address(text: str, patterns: ReceiptPatterns) -> bool:
    return matches_any(text, patterns.address_indicators)


def _has_indicator(text: str, patterns: ReceiptPatterns) -> bool:
    return matches_any(text, patterns.business_name_indicators)


def _is_amount_line(text: str, patterns: ReceiptPatterns) -> bool:
    if matches_any(text, patterns.total_patterns) or matches_any(text, patterns.vat_patterns):
        return True
    digits = sum(ch.isdigit() for ch in text)
    return digits > sum(ch.isalpha() for ch in text)


def _strip_boilerplate(text: str, patterns: ReceiptPatterns) -> str:
    for prefix in patterns.boilerplate_prefixes:
        text = prefix.sub("", text, count=1).strip()
    return text


def _confidence(line: str, index: int, vkn_index: int, address_index: int, patterns: ReceiptPatterns) -> int:
    score = 0
    upper = line.upper()
    letters_only = _NON_NAME_CHARS.sub(" ", upper).strip()
    if len(letters_only) > 5 and letters_only == upper:
        score += 3
    if _has_indicator(line, patterns):
        score += 2
    near_vkn = vkn_index != -1 and index < vkn_index and vkn_index - index < ANCHOR_PROXIMITY
    near_address = address_index != -1 and index < address_index and address_index - index < ANCHOR_PROXIMITY
    if near_vkn or near_address:
        score += 1
    if len(line) > 5 and not _is_numeric_or_date(line, patterns):
        score += 1
    return score


def _stops_block(line: str, patterns: ReceiptPatterns) -> bool:
    if (
        _is_address(line, patterns)
        or patterns.vkn_pattern.search(line)
        or len(line) < 5
        or patterns.numeric_or_time.search(line)
        or patterns.date_only.search(line)
        or patterns.noise_label_line.search(line)
    ):
        # a suffix line that still looks like a name keeps the block going
        looks_like_name = len(line) > 5 and line.upper() == line
        return not (_has_indicator(line, patterns) and looks_like_name)
    return False


def _best_start_line(lines: List[str], patterns: ReceiptPatterns) -> int:
    vkn_index = -1
    address_index = -1
    anchors: List[int] = []
    for i, line in enumerate(lines):
        if patterns.vkn_pattern.search(line):
            vkn_index = i
        if _is_address(line, patterns):
            address_index = i
        if _has_indicator(line, patterns):
            anchors.append(i)

    best_index, best_score = -1, -1
    for anchor in anchors:
        for i in range(anchor, max(0, anchor - MAX_LOOKBACK) - 1, -1):
            score = _confidence(lines[i], i, vkn_index, address_index, patterns)
            if score > best_score:
                best_index, best_score = i, score
    if best_index != -1:
        LOG.debug("Business-name block starts at line %d (score=%d): %r", best_index, best_score, lines[best_index])
    return best_index


def _merge_block(lines: List[str], start: int, patterns: ReceiptPatterns) -> Optional[str]:
    block: List[str] = []
    for line in lines[start:start + MAX_BLOCK_LINES]:
        if _stops_block(line, patterns):
            break
        cleaned = _NON_BLOCK_CHARS.sub(" ", line.upper()).strip()
        if len(cleaned) > 3:
            block.append(cleaned)
    if not block:
        return None

    merged = re.sub(r"\s+", " ", " ".join(block)).strip()
    merged = _strip_boilerplate(merged, patterns)
    for address in patterns.address_indicators:
        m = address.search(merged)
        if m:
            merged = merged[:m.start()].strip()
    m = patterns.vkn_pattern.search(merged)
    if m:
        merged = merged[:m.start()].strip()
    merged = patterns.legal_suffix_tail.sub("", merged, count=1).strip()

    if len(merged) > 5 and not _is_numeric_or_date(merged, patterns):
        return merged
    return None


def _fallback_name(lines: List[str], patterns: ReceiptPatterns) -> Optional[str]:
    best: Optional[str] = None
    for line in lines[:FALLBACK_SCAN_LINES]:
        if (
            len(line) > 10
            and line.upper() == line
            and not patterns.digits_only.search(line)
            and not _is_amount_line(line, patterns)
            and not _is_address(line, patterns)
            and not patterns.vkn_pattern.search(line)
        ):
            if best is None or len(line) > len(best):
                best = line
    return best


def resolve_business_name(lines: Sequence[str], patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[str]:
    """Resolve the merchant name from the full list of receipt lines.

    Returns None when neither a suffix-anchored block nor an upper-case
    header line can be found.
    """
    stripped = [ln.strip() for ln in lines]
    candidate: Optional[str] = None

    start = _best_start_line(stripped, patterns)
    if start != -1:
        candidate = _merge_block(stripped, start, patterns)
    if candidate is None:
        candidate = _fallback_name(stripped, patterns)
        if candidate is not None:
            LOG.debug("Business name from upper-case header fallback: %r", candidate)
    if candidate is None:
        return None

    candidate = re.sub(r"\s+", " ", candidate).strip()
    candidate = patterns.boilerplate_prefixes[0].sub("", candidate, count=1).strip()
    candidate = patterns.name_leading_noise.sub("", candidate, count=1).strip()
    return candidate or None
