from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PaymentType(str, Enum):
    CARD = "CARD"
    CASH = "CASH"
    UNKNOWN = "UNKNOWN"


class TransactionCategory(str, Enum):
    FOOD = "FOOD"
    FUEL = "FUEL"
    PARKING = "PARKING"
    STATIONERY = "STATIONERY"
    HEALTH = "HEALTH"
    CLEANING = "CLEANING"
    SHOPPING = "SHOPPING"
    ELECTRONICS = "ELECTRONICS"
    OTHER = "OTHER"


@dataclass(frozen=True)
class LineItem:
    name: str
    line_total: float
    quantity: Optional[int] = None
    unit_price: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "lineTotal": self.line_total}
        if self.quantity is not None:
            out["quantity"] = self.quantity
        if self.unit_price is not None:
            out["unitPrice"] = self.unit_price
        return out


@dataclass(frozen=True)
class TransactionType:
    category: TransactionCategory
    vat_rate: Optional[int] = None


@dataclass(frozen=True)
class ReceiptRecord:
    """Structured result of reading one receipt.

    Every field is independently optional; an all-``None`` record is a valid
    (if useless) outcome. Instances are immutable, extractors build new ones
    with :func:`dataclasses.replace`.
    """

    business_name: Optional[str] = None
    transaction_date: Optional[str] = None  # DD.MM.YYYY
    receipt_number: Optional[str] = None
    products: Tuple[LineItem, ...] = field(default_factory=tuple)
    vat_amount: Optional[float] = None
    total_amount: Optional[float] = None
    transaction_type: Optional[TransactionType] = None
    payment_type: Optional[PaymentType] = None

    @property
    def vat_rate(self) -> Optional[int]:
        return self.transaction_type.vat_rate if self.transaction_type else None

    def as_dict(self) -> Dict[str, Any]:
        """Render with the camelCase keys used by the storage/export side."""
        tt = None
        if self.transaction_type is not None:
            tt = {
                "category": self.transaction_type.category.value,
                "vatRate": self.transaction_type.vat_rate,
            }
        return {
            "businessName": self.business_name,
            "transactionDate": self.transaction_date,
            "receiptNumber": self.receipt_number,
            "products": [p.as_dict() for p in self.products],
            "vatAmount": self.vat_amount,
            "totalAmount": self.total_amount,
            "transactionType": tt,
            "paymentType": self.payment_type.value if self.payment_type else None,
        }
