from ..domain.models import ReceiptRecord


def is_anomalous(record: ReceiptRecord) -> bool:
    """True when the local read is too broken to trust.

    Missing or zero total, missing or zero VAT, or VAT above the total all
    send the receipt down the escalation path.
    """
    total = record.total_amount
    vat = record.vat_amount
    if not total or not vat:
        return True
    return vat > total
