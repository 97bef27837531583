"""Static pattern library shared by every receipt field extractor.

The table is compiled once at import time into :data:`RECEIPT_PATTERNS` and is
read-only afterwards; extractors receive it as a parameter so tests can pass a
modified copy built with :func:`dataclasses.replace`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

from .models import PaymentType, TransactionCategory

_I = re.IGNORECASE

# Separators OCR produces between date parts: . / \ - and whitespace
_DATE_SEP = r"[./\\\s-]"
# Both separators of one date must be the same character
_SEP = r"(?P<sep>[./\\\s-])"
_SAME_SEP = r"(?P=sep)"

_LEGAL_SUFFIXES = (
    r"A\.Ş\.|AŞ|LTD\. ŞTİ\.|LTD ŞTİ|LTDSTI|LTD\.STİ|TİC\.\s*A\.Ş\.|TİC\.\s*LTD\.\s*ŞTİ\.|TİC\.|TİC|ŞTİ\.|"
    r"KOLL\. ŞTİ\.|VE TİC\.|ANONİM|LİMİTED|GIDA|TARIM|SAN|TİCARET|DAĞITIM|HİZMETLERİ|YATIRIM|"
    r"İTHALAT|İHRACAT"
)

_BOILERPLATE_LABELS = (
    r"PRMETRE TAMAMLANDI|RAPOR BASLANGICI|FIŞ NO|SATIS FIŞI|BELGE NO|GMU-\d+|SATIŞ NO|SERİ NO|YIGINNO|TOPLAM"
)


def _word(alternatives: str) -> Pattern[str]:
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", _I)


@dataclass(frozen=True)
class ReceiptPatterns:
    # dates: D-M-Y(4), Y(4)-M-D, D-M-Y(2), Y(2)-M-D
    date_patterns: Tuple[Pattern[str], ...]
    date_separator: Pattern[str]
    receipt_number_patterns: Tuple[Pattern[str], ...]
    product_line: Pattern[str]
    product_line_alt: Pattern[str]
    vat_patterns: Tuple[Pattern[str], ...]
    total_patterns: Tuple[Pattern[str], ...]
    amount_token: Pattern[str]
    vat_keywords: Tuple[str, ...]
    total_keywords: Tuple[str, ...]
    category_patterns: Tuple[Pattern[str], ...]
    category_keywords: Tuple[Tuple[str, TransactionCategory], ...]
    payment_patterns: Tuple[Tuple[PaymentType, Pattern[str]], ...]
    business_name_indicators: Tuple[Pattern[str], ...]
    address_indicators: Tuple[Pattern[str], ...]
    vkn_pattern: Pattern[str]
    legal_suffix_tail: Pattern[str]
    noise_label_line: Pattern[str]
    boilerplate_prefixes: Tuple[Pattern[str], ...]
    name_leading_noise: Pattern[str]
    digits_only: Pattern[str]
    numeric_or_time: Pattern[str]
    date_only: Pattern[str]
    has_digit: Pattern[str]
    has_letter: Pattern[str]


def build_receipt_patterns() -> ReceiptPatterns:
    return ReceiptPatterns(
        date_patterns=(
            re.compile(rf"\b\d{{1,2}}{_SEP}\d{{1,2}}{_SAME_SEP}\d{{4}}\b"),
            re.compile(rf"\b\d{{4}}{_SEP}\d{{1,2}}{_SAME_SEP}\d{{1,2}}\b"),
            re.compile(rf"\b\d{{1,2}}{_SEP}\d{{1,2}}{_SAME_SEP}\d{{2}}\b"),
            re.compile(rf"\b\d{{2}}{_SEP}\d{{1,2}}{_SAME_SEP}\d{{1,2}}\b"),
        ),
        date_separator=re.compile(_DATE_SEP),
        receipt_number_patterns=(
            re.compile(r"(Fiş No|FİŞ NO|Belge No|SERİ NO|BNO|MAKBUZ NO)[:\s]*([\w\d]+)", _I),
            re.compile(r"(^\d{6,})", re.MULTILINE),
        ),
        product_line=re.compile(r"(.+?)\s+(\d+)\s+x\s+([\d.,]+)\s+([\d.,]+)\s*(TL)?", _I),
        product_line_alt=re.compile(r"(.+?)\s+(\d+)\s+([\d.,]+)\s*(TL)?", _I),
        # An inline rate ("%10", "10%") may sit between the label and the amount
        vat_patterns=(
            re.compile(
                r"(TOPKDV|KDV)[^0-9.,%]*(?:%\s*\d{1,2}(?!\d)|\d{1,2}\s*%)?[^0-9.,%]*([\d\s.,]+)\s*(TL)?",
                _I,
            ),
        ),
        total_patterns=(
            re.compile(r"(TOPLAM|GENEL TOPLAM|ÖDENECEK|KDV DAHİL TOPLAM|TOTAL|SATIS TU|SATIŞ TU).*?([\d\s.,]+)", _I),
        ),
        amount_token=re.compile(r"\b(?:\d{1,3}(?:[.,\s]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)\b"),
        vat_keywords=("toplam kdv", "kdv"),
        total_keywords=("genel toplam", "toplam tutar", "toplam"),
        category_patterns=(
            re.compile(r"(YİYECEK|YEMEK|PARK|YAKIT|BENZİN|KIRTASİYE|SAĞLIK|TEMİZLİK)\s*[^0-9\s]*(\d{1,3})?", _I),
        ),
        # folded (lower-case, dotted i) keyword -> category, longest first
        category_keywords=(
            ("akaryakit", TransactionCategory.FUEL),
            ("kirtasiye", TransactionCategory.STATIONERY),
            ("elektronik", TransactionCategory.ELECTRONICS),
            ("alisveris", TransactionCategory.SHOPPING),
            ("temizlik", TransactionCategory.CLEANING),
            ("otopark", TransactionCategory.PARKING),
            ("yiyecek", TransactionCategory.FOOD),
            ("benzin", TransactionCategory.FUEL),
            ("saglik", TransactionCategory.HEALTH),
            ("yemek", TransactionCategory.FOOD),
            ("yakit", TransactionCategory.FUEL),
            ("mazot", TransactionCategory.FUEL),
            ("ilac", TransactionCategory.HEALTH),
            ("park", TransactionCategory.PARKING),
        ),
        payment_patterns=(
            (
                PaymentType.CARD,
                re.compile(
                    r"(?<!\w)(KREDİ KARTI|KREDI KARTI|K\.KARTI|KART\w*|CREDIT CARD|VISA|MASTER\s?CARD|MC|VPOS|POS)(?!\w)",
                    _I,
                ),
            ),
            (PaymentType.CASH, re.compile(r"(?<!\w)(NAKİT|NAKIT|PEŞİN|PESIN|CASH)(?!\w)", _I)),
        ),
        business_name_indicators=(
            _word(r"A\.Ş\.|AŞ|A\s*Ş"),
            _word(r"LTD\.\s*ŞTİ\.?|LTD\s*ŞTİ|LTDSTI|LTD\.STİ"),
            _word(r"TİC\.\s*A\.Ş\.|TİC\.\s*LTD\.\s*ŞTİ\.|TİC\.|TİC"),
            _word(r"ŞTİ\.|ŞTİ"),
            _word(r"KOLL\.\s*ŞTİ\."),
            _word(r"VE TİC\."),
            _word(r"ANONİM|LİMİTED"),
            _word(r"GIDA"),
            _word(r"TARIM"),
            _word(r"SAN"),
            _word(r"TİCARET"),
            _word(r"DAĞITIM"),
            _word(r"HİZMETLERİ"),
            _word(r"YATIRIM"),
            _word(r"İTHALAT"),
            _word(r"İHRACAT"),
            _word(r"SANAYİ"),
        ),
        address_indicators=(
            # "No:5" style door numbers; a bare "NO: " label is not an address
            re.compile(
                r"(?<!\w)(?:MAH\.|MAHALLESİ|CADDESİ|CAD\.|SOKAĞI|SOKAK|SOK\.|SK\.|BULVARI|BLV\.|APT\.|DAİRE|"
                r"KAPI NO:|NO:(?=\d))",
                _I,
            ),
            _word(r"İLÇE|İL|SEMTİ|KÖYÜ"),
            _word(r"İSTANBUL|ANKARA|İZMİR|ADANA|BURSA|ANTALYA|TR|TÜRKİYE"),
            _word(r"POSTA KODU"),
            _word(r"VERGİ DAİRESİ|V\.D\.|VD"),
        ),
        vkn_pattern=re.compile(r"(?:VKN|VERGİ NO|VERGİ KİMLİK NO)[:\s]*(\d{10,11})\b", _I),
        legal_suffix_tail=re.compile(rf"\s*(?<!\w)(?:{_LEGAL_SUFFIXES})\s*$", _I),
        noise_label_line=re.compile(rf"^(?:{_BOILERPLATE_LABELS})[\s\d:.-]*$", _I),
        boilerplate_prefixes=(
            re.compile(rf"^(?:{_BOILERPLATE_LABELS})[\s\d:.-]*", _I),
            re.compile(
                r"^(?:FIŞ NO|SATIŞ FİŞİ|BELGE NO|GMU-\d+|SATIŞ NO|SERİ NO|YIĞIN NO|PRMETRE TAMAMLANDI|RAPOR BAŞLANGICI)"
                r"\s*[:\s\d]*",
                _I,
            ),
        ),
        # 1-3 lower-case/symbol chars OCR tends to glue in front of a name
        name_leading_noise=re.compile(r"^\s*([a-z?!*/\-+><()_@#$%^&]{1,3}\s*)?(?=[A-ZİÜÖÇŞĞ]|\d)"),
        digits_only=re.compile(r"^\d+$"),
        numeric_or_time=re.compile(r"^\d+(\s*:\s*\d+)?$"),
        date_only=re.compile(rf"^\d{{1,2}}{_DATE_SEP}\d{{1,2}}{_DATE_SEP}\d{{2,4}}$"),
        has_digit=re.compile(r"\d"),
        has_letter=re.compile(r"[a-zA-ZğüşıöçĞÜŞİÖÇ]"),
    )


RECEIPT_PATTERNS = build_receipt_patterns()


def matches_any(text: str, patterns: Tuple[Pattern[str], ...]) -> bool:
    return any(p.search(text) for p in patterns)
