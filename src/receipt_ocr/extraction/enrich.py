from dataclasses import replace

from ..domain.models import ReceiptRecord, TransactionCategory, TransactionType
from ..domain.normalize import round2
from ..logging import get_logger

LOG = get_logger("enrich")

STANDARD_VAT_RATES = (1, 10, 20)


def derive_vat_amount(total: float, rate: int) -> float:
    """VAT contained in a VAT-inclusive ``total`` at ``rate`` percent."""
    return round2(total - total / (1 + rate / 100))


def snap_vat_rate(vat: float, total: float) -> int:
    implied = vat * 100 / total
    return min(STANDARD_VAT_RATES, key=lambda r: abs(r - implied))


def enrich_receipt(record: ReceiptRecord) -> ReceiptRecord:
    vat = record.vat_amount
    total = record.total_amount
    rate = record.vat_rate
    transaction_type = record.transaction_type

    if vat is None and rate is not None and total is not None:
        vat = derive_vat_amount(total, rate)
        LOG.debug("Derived VAT %.2f from total %.2f at %d%%", vat, total, rate)
    elif rate is None and vat is not None and total:
        rate = snap_vat_rate(vat, total)
        category = transaction_type.category if transaction_type else TransactionCategory.OTHER
        transaction_type = TransactionType(category=category, vat_rate=rate)
        LOG.debug("Snapped VAT rate to %d%% from %.2f / %.2f", rate, vat, total)

    return replace(
        record,
        vat_amount=round2(vat) if vat is not None else None,
        total_amount=round2(total) if total is not None else None,
        transaction_type=transaction_type,
    )
