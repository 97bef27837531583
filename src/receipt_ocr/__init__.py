"""
Receipt OCR – structured field extraction for Turkish receipts.

Offline OCR text is scanned line by line into a ReceiptRecord; records that
look broken (missing or inconsistent VAT/total) are escalated to cloud OCR and
an LLM, then enriched with derived VAT values.
"""

__all__ = [
    "cli",
    "config",
    "domain",
    "errors",
    "extraction",
    "logging",
    "ocr",
    "orchestrator",
]
