import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath("src"))

from receipt_ocr.domain.models import LineItem, PaymentType, TransactionCategory, TransactionType
from receipt_ocr.extraction.fields import (
    parse_payment_type,
    parse_product_line,
    parse_products,
    parse_receipt_number,
    parse_total_amount,
    parse_transaction_date,
    parse_transaction_type,
    parse_vat_amount,
)

TODAY = date(2024, 6, 15)


def test_date_relative_to_real_today():
    year = date.today().year
    assert parse_transaction_date(f"TARİH: 15.03.{year}") == f"15.03.{year}"


def test_latest_plausible_date_wins():
    assert parse_transaction_date("01.02.2024 10.05.2024", today=TODAY) == "10.05.2024"


def test_date_parts_must_share_one_separator():
    assert parse_transaction_date("01.02.2024 10/05.2024", today=TODAY) == "01.02.2024"
    assert parse_transaction_date("2024 10.05", today=TODAY) is None


def test_dates_outside_window_are_never_returned():
    assert parse_transaction_date("01.06.2019", today=TODAY) is None
    assert parse_transaction_date("01.06.2026", today=TODAY) is None
    assert parse_transaction_date("01.06.2025", today=TODAY) == "01.06.2025"


def test_year_first_and_two_digit_years():
    assert parse_transaction_date("2024-06-01", today=TODAY) == "01.06.2024"
    assert parse_transaction_date("01/06/24", today=TODAY) == "01.06.2024"


def test_impossible_calendar_date_is_skipped():
    assert parse_transaction_date("31.02.2024", today=TODAY) is None


def test_receipt_number_markers():
    assert parse_receipt_number("FİŞ NO: 0015") == "0015"
    assert parse_receipt_number("Belge No:A12B") == "A12B"
    assert parse_receipt_number("12345678") == "12345678"
    assert parse_receipt_number("KASA 1") is None


def test_strict_product_line():
    item = parse_product_line("EKMEK 2 x 5,00 10,00 TL")
    assert item == LineItem(name="EKMEK", quantity=2, unit_price=5.0, line_total=10.0)


def test_loose_product_line_short_number_is_quantity():
    item = parse_product_line("SU 500ML 3 15,00")
    assert item == LineItem(name="SU 500ML", quantity=3, line_total=15.0)


def test_loose_product_line_long_number_joins_name():
    item = parse_product_line("KALEM 12345 7,50")
    assert item == LineItem(name="KALEM 12345", line_total=7.5)


def test_products_keep_order_and_skip_non_items():
    items = parse_products(["EKMEK 2 x 5,00 10,00", "12 34", "TEŞEKKÜRLER", "SUT 1 x 20,00 20,00"])
    assert [i.name for i in items] == ["EKMEK", "SUT"]


@pytest.mark.parametrize(
    "line, expected",
    [
        ("KDV %10 25,00", 25.00),
        ("KDV 10% 25,00", 25.00),
        ("TOPKDV 193,55", 193.55),
        ("KDV: 1. 253, 43", 1253.43),
        ("TOPLAM KDV *18,20", 18.20),
    ],
)
def test_vat_amount(line, expected):
    assert parse_vat_amount(line) == expected


def test_vat_rate_alone_is_not_an_amount():
    assert parse_vat_amount("KDV %8") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("TOPLAM 275,00", 275.00),
        ("TOPLAM ~ 7% Hy :*275,00", 275.00),
        ("GENEL TOPLAM 1 250,50", 1250.50),
        ("18,00\n120,00", 120.00),
        ("TOPLAM 1250,50", 1250.50),
        ("GENEL TOPLAM *2129,90", 2129.90),
    ],
)
def test_total_amount_takes_largest_positive(text, expected):
    assert parse_total_amount(text) == expected


def test_total_amount_none_without_numbers():
    assert parse_total_amount("TOPLAM") is None


@pytest.mark.parametrize(
    "line, category, rate",
    [
        ("YEMEK %10", TransactionCategory.FOOD, 10),
        ("YEMEK *710", TransactionCategory.FOOD, 10),
        ("PARK 8", TransactionCategory.PARKING, 8),
        ("YEMEK 999", TransactionCategory.FOOD, 99),
        ("BENZİN", TransactionCategory.FUEL, None),
    ],
)
def test_transaction_type_inline_rate(line, category, rate):
    assert parse_transaction_type(line) == TransactionType(category=category, vat_rate=rate)


def test_transaction_type_without_keyword():
    assert parse_transaction_type("TOPLAM 10,00") is None


@pytest.mark.parametrize(
    "line, expected",
    [
        ("KREDİ KARTI", PaymentType.CARD),
        ("BANKA KARTI ****1234", PaymentType.CARD),
        ("VISA", PaymentType.CARD),
        ("NAKİT 100,00", PaymentType.CASH),
        ("CASH", PaymentType.CASH),
        ("POSTA KODU 34000", None),
        ("TEŞEKKÜRLER", None),
    ],
)
def test_payment_type(line, expected):
    assert parse_payment_type(line) == expected
