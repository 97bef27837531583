import math
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from ..logging import get_logger
from .models import PaymentType, TransactionCategory
from .patterns import RECEIPT_PATTERNS

_LOG = get_logger("normalize")

_ASCII_FOLD = str.maketrans("çğıöşü", "cgiosu")

_CARD_KEYS = ("kredi", "kart", "visa", "master", "pos", "credit", "card")
_CASH_KEYS = ("nakit", "pesin", "cash")

_FLOAT_EXPONENT = re.compile(r"\d+(?:\.\d+)?[eE][+-]?\d+")


def glue_amount_spacing(text: str) -> str:
    """Glue digit groups that OCR split with stray spaces.

    ``"1. 253, 43"`` becomes ``"1.253,43"`` and ``"12 , 50"`` becomes ``"12,50"``.
    Runs of whitespace are collapsed to a single space.
    """
    if not text:
        return ""
    out = re.sub(r"(\d)\s+[.,]?\s*(\d{3})\s*[,.]?\s*(\d{2})", r"\1.\2,\3", text)
    out = re.sub(r"(\d+)\s*,\s*(\d{2})", r"\1,\2", out)
    out = re.sub(r"(\d+)\s*\.\s*(\d{3})", r"\1.\2", out)
    return re.sub(r"\s{2,}", " ", out).strip()


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def normalize_amount(raw: Any) -> Optional[float]:
    """Turkish/ISO amount string to a float rounded to two decimals.

    When a comma comes after the last dot the comma is the decimal separator
    and dots group thousands (``"1.234,56"``); otherwise the dot is decimal and
    commas are dropped (``"1,234.56"``). Returns None when nothing numeric is left.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return round2(float(raw)) if math.isfinite(raw) else None
    text = str(raw).strip()
    # str() of a float renders large values in exponent form
    if _FLOAT_EXPONENT.fullmatch(text):
        value = float(text)
        return round2(value) if math.isfinite(value) else None
    cleaned = re.sub(r"[^\d.,]", "", glue_amount_spacing(text)).strip(".,")
    if not cleaned:
        return None
    if cleaned.rfind(",") > cleaned.rfind("."):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    try:
        value = float(cleaned)
    except ValueError:
        _LOG.debug("Amount not parseable: %r -> %r", raw, cleaned)
        return None
    if not math.isfinite(value):
        return None
    return round2(value)


def fold_turkish(text: str) -> str:
    """Lower-case with Turkish dotted/dotless i rules (İ -> i, I -> ı)."""
    return (text or "").replace("İ", "i").replace("I", "ı").lower()


def _ascii_key(text: str) -> str:
    return fold_turkish(text).translate(_ASCII_FOLD)


def parse_percent(value: Any) -> Optional[int]:
    """``"%10"``, ``"10"``, ``10`` -> 10; anything outside 0..100 -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        rate = int(value) if math.isfinite(value) else -1
    else:
        m = re.search(r"\d+", str(value))
        if not m:
            return None
        rate = int(m.group(0))
    return rate if 0 <= rate <= 100 else None


def normalize_payment_type(value: Any) -> Optional[PaymentType]:
    if value is None:
        return None
    if isinstance(value, PaymentType):
        return value
    key = _ascii_key(str(value)).strip()
    if not key:
        return None
    if any(k in key for k in _CARD_KEYS):
        return PaymentType.CARD
    if any(k in key for k in _CASH_KEYS):
        return PaymentType.CASH
    return PaymentType.UNKNOWN


def normalize_category(value: Any) -> Optional[TransactionCategory]:
    if value is None:
        return None
    if isinstance(value, TransactionCategory):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return TransactionCategory(raw.upper())
    except ValueError:
        pass
    key = _ascii_key(raw)
    for keyword, category in RECEIPT_PATTERNS.category_keywords:
        if keyword in key:
            return category
    return TransactionCategory.OTHER


def expand_two_digit_year(year: int, today: Optional[date] = None) -> int:
    """Two-digit years land in the 2000s unless that is past next year."""
    if year >= 100:
        return year
    current = (today or date.today()).year
    return 1900 + year if year + 2000 > current + 1 else 2000 + year


def canonical_date(value: Any, today: Optional[date] = None) -> Optional[str]:
    """Render a D.M.Y / Y-M-D style date as DD.MM.YYYY, or None if invalid."""
    if not value:
        return None
    m = re.fullmatch(r"(\d{1,4})(?P<sep>[./\\\s-])(\d{1,2})(?P=sep)(\d{1,4})", str(value).strip())
    if not m:
        return None
    first, _, second, third = m.groups()
    if len(first) == 4:
        y, mo, d = int(first), int(second), int(third)
    elif len(third) in (2, 4):
        d, mo, y = int(first), int(second), expand_two_digit_year(int(third), today)
    else:
        return None
    try:
        parsed = date(y, mo, d)
    except ValueError:
        return None
    return f"{parsed.day:02d}.{parsed.month:02d}.{parsed.year:04d}"
