from dataclasses import replace
from datetime import date
from typing import List, Optional, Sequence

from ..config import DEFAULT_FUZZY_THRESHOLD
from ..domain.fuzzy import fuzzy_find
from ..domain.merchant import resolve_business_name
from ..domain.models import ReceiptRecord
from ..domain.patterns import RECEIPT_PATTERNS, ReceiptPatterns, matches_any
from ..logging import get_logger
from .fields import (
    parse_payment_type,
    parse_product_line,
    parse_receipt_number,
    parse_total_amount,
    parse_transaction_date,
    parse_transaction_type,
    parse_vat_amount,
)

LOG = get_logger("scan")


def split_lines(raw_text: str) -> List[str]:
    """Trimmed, non-empty lines of an OCR text."""
    return [ln.strip() for ln in (raw_text or "").splitlines() if ln.strip()]


def _is_vat_line(line: str, patterns: ReceiptPatterns, threshold: float) -> bool:
    return bool(fuzzy_find(line, patterns.vat_keywords, threshold) or matches_any(line, patterns.vat_patterns))


def _is_total_line(line: str, patterns: ReceiptPatterns, threshold: float) -> bool:
    return bool(fuzzy_find(line, patterns.total_keywords, threshold) or matches_any(line, patterns.total_patterns))


def scan_line(
    record: ReceiptRecord,
    line: str,
    lines: Sequence[str],
    patterns: ReceiptPatterns = RECEIPT_PATTERNS,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
    today: Optional[date] = None,
) -> ReceiptRecord:
    """Fold one line into ``record``; fields that are already set are kept."""
    updates = {}

    if record.business_name is None and matches_any(line, patterns.business_name_indicators):
        updates["business_name"] = resolve_business_name(lines, patterns)

    if record.transaction_date is None and matches_any(line, patterns.date_patterns):
        updates["transaction_date"] = parse_transaction_date(line, patterns, today)

    if record.receipt_number is None and matches_any(line, patterns.receipt_number_patterns):
        updates["receipt_number"] = parse_receipt_number(line, patterns)

    if record.vat_amount is None and _is_vat_line(line, patterns, threshold):
        updates["vat_amount"] = parse_vat_amount(line, patterns)

    if record.total_amount is None and _is_total_line(line, patterns, threshold):
        updates["total_amount"] = parse_total_amount(line, patterns)

    if record.transaction_type is None and matches_any(line, patterns.category_patterns):
        updates["transaction_type"] = parse_transaction_type(line, patterns)

    if record.payment_type is None:
        updates["payment_type"] = parse_payment_type(line, patterns)

    item = parse_product_line(line, patterns)
    if item is not None:
        updates["products"] = record.products + (item,)

    found = {k: v for k, v in updates.items() if v is not None}
    if found:
        LOG.debug("Line %r -> %s", line, sorted(found))
        return replace(record, **found)
    return record


def parse_receipt_lines(
    lines: Sequence[str],
    patterns: ReceiptPatterns = RECEIPT_PATTERNS,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
    today: Optional[date] = None,
) -> ReceiptRecord:
    """Single forward pass over ``lines``; the first match wins per field."""
    lines = [ln.strip() for ln in lines if ln and ln.strip()]
    record = ReceiptRecord()
    for line in lines:
        record = scan_line(record, line, lines, patterns, threshold, today)
    return record


def parse_receipt_text(
    raw_text: str,
    patterns: ReceiptPatterns = RECEIPT_PATTERNS,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
    today: Optional[date] = None,
) -> ReceiptRecord:
    return parse_receipt_lines(split_lines(raw_text), patterns, threshold, today)
