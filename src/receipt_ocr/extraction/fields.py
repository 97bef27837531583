"""Single-field extractors.

Every extractor takes OCR text (one line during the scan) plus the pattern
table and returns a typed value or None. A parse failure inside one extractor
is logged and leaves that field empty; it never aborts the record.
"""

import functools
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from ..domain.models import LineItem, PaymentType, TransactionType
from ..domain.normalize import (
    expand_two_digit_year,
    glue_amount_spacing,
    normalize_amount,
    normalize_category,
)
from ..domain.patterns import RECEIPT_PATTERNS, ReceiptPatterns
from ..logging import get_logger

LOG = get_logger("fields")

T = TypeVar("T")

# Accepted transaction years relative to today
YEARS_BACK = 2
YEARS_AHEAD = 1


def _field_extractor(func: Callable[..., Optional[T]]) -> Callable[..., Optional[T]]:
    @functools.wraps(func)
    def wrapper(text, *args, **kwargs):
        try:
            return func(text, *args, **kwargs)
        except (ValueError, ArithmeticError, IndexError, TypeError) as e:
            LOG.debug("%s failed on %r: %s", func.__name__, text, e)
            return None

    return wrapper


@_field_extractor
def parse_transaction_date(
    text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS, today: Optional[date] = None
) -> Optional[str]:
    """Latest plausible date in ``text`` as DD.MM.YYYY.

    A four-digit first group means Y-M-D, otherwise D-M-Y. Dates outside
    [this year - 2, this year + 1] are ignored.
    """
    today = today or date.today()
    lowest, highest = today.year - YEARS_BACK, today.year + YEARS_AHEAD
    best: Optional[date] = None
    for pattern in patterns.date_patterns:
        for m in pattern.finditer(text):
            parts = patterns.date_separator.split(m.group(0))
            if len(parts) != 3:
                continue
            first, second, third = (int(p) for p in parts)
            if len(parts[0]) == 4:
                year, month, day = first, second, third
            else:
                day, month, year = first, second, expand_two_digit_year(third, today)
            try:
                candidate = date(year, month, day)
            except ValueError:
                continue
            if not lowest <= candidate.year <= highest:
                LOG.debug("Date %s outside %d..%d, skipped", m.group(0), lowest, highest)
                continue
            if best is None or candidate > best:
                best = candidate
    if best is None:
        return None
    return f"{best.day:02d}.{best.month:02d}.{best.year:04d}"


@_field_extractor
def parse_receipt_number(text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[str]:
    for pattern in patterns.receipt_number_patterns:
        m = pattern.search(text)
        if m:
            value = m.group(m.lastindex) if m.lastindex else m.group(0)
            return value.strip() or None
    return None


@_field_extractor
def parse_product_line(line: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[LineItem]:
    """``name qty x unit total [TL]`` first, then ``name qty|code total [TL]``."""
    line = line.strip()
    if not (patterns.has_digit.search(line) and patterns.has_letter.search(line)):
        return None

    m = patterns.product_line.search(line)
    if m:
        line_total = normalize_amount(m.group(4))
        if line_total is not None:
            return LineItem(
                name=m.group(1).strip(),
                quantity=int(m.group(2)),
                unit_price=normalize_amount(m.group(3)),
                line_total=line_total,
            )

    m = patterns.product_line_alt.search(line)
    if not m:
        return None
    line_total = normalize_amount(m.group(3))
    if line_total is None:
        return None
    name, quantity_or_code = m.group(1).strip(), m.group(2)
    # short integers are quantities; longer digit runs belong to the name (sizes, codes)
    if len(quantity_or_code) < 4:
        return LineItem(name=name, quantity=int(quantity_or_code), line_total=line_total)
    return LineItem(name=f"{name} {quantity_or_code}", line_total=line_total)


def parse_products(lines: Sequence[str], patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Tuple[LineItem, ...]:
    items: List[LineItem] = []
    for line in lines:
        item = parse_product_line(line, patterns)
        if item is not None:
            items.append(item)
    return tuple(items)


@_field_extractor
def parse_vat_amount(text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[float]:
    glued = glue_amount_spacing(text)
    for pattern in patterns.vat_patterns:
        m = pattern.search(glued)
        if not m:
            continue
        # after gluing, whitespace only separates distinct amounts
        tokens = m.group(2).split()
        if tokens:
            value = normalize_amount(tokens[0])
            if value is not None:
                return value
    return None


@_field_extractor
def parse_total_amount(text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[float]:
    """Largest positive amount on the first total-labelled line.

    Without a labelled line every amount-shaped token in ``text`` competes.
    """
    lines = [glue_amount_spacing(ln) for ln in text.split("\n")]
    target = "\n".join(lines)
    for line in lines:
        if any(p.search(line) for p in patterns.total_patterns):
            target = line
            break

    candidates = []
    for m in patterns.amount_token.finditer(target):
        value = normalize_amount(m.group(0))
        if value is not None and value > 0:
            candidates.append(value)
    return max(candidates) if candidates else None


def _inline_rate(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    if len(raw) == 3:
        rate = int(raw[-2:])
    elif len(raw) <= 2:
        rate = int(raw)
    else:
        return None
    return rate if 0 <= rate <= 100 else None


@_field_extractor
def parse_transaction_type(text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[TransactionType]:
    for pattern in patterns.category_patterns:
        m = pattern.search(text)
        if m:
            category = normalize_category(m.group(1))
            if category is None:
                continue
            return TransactionType(category=category, vat_rate=_inline_rate(m.group(2)))
    return None


@_field_extractor
def parse_payment_type(text: str, patterns: ReceiptPatterns = RECEIPT_PATTERNS) -> Optional[PaymentType]:
    for payment_type, pattern in patterns.payment_patterns:
        if pattern.search(text):
            return payment_type
    return None
