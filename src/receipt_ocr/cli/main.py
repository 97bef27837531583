from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, Sequence

from ..config import load_settings
from ..errors import ReceiptPipelineError
from ..extraction.anomaly import is_anomalous
from ..extraction.enrich import enrich_receipt
from ..extraction.scan import parse_receipt_text
from ..logging import get_logger
from ..ocr.tesseract import TesseractOcr
from ..orchestrator import ExtractionOutcome, build_pipeline, list_receipt_images, process_batch

LOG = get_logger("cli-main")


def _outcome_json(outcome: ExtractionOutcome, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(extra)
    out["record"] = outcome.record.as_dict()
    out["anomalous"] = outcome.anomalous
    out["escalated"] = outcome.escalated
    out["stages"] = [s.value for s in outcome.stages]
    return out


def _print_json(obj: Any, pretty: bool = True) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2 if pretty else None))


def _read_image(path: str) -> bytes | None:
    if not os.path.isfile(path):
        LOG.error(f"Image not found: {path}")
        return None
    with open(path, "rb") as f:
        return f.read()


def _handle_parse(ns: argparse.Namespace) -> int:
    try:
        with open(ns.text, "r", encoding="utf-8") as f:
            raw_text = f.read()
    except OSError as e:
        LOG.error(f"Cannot read text file {ns.text}: {e}")
        return 2
    settings = load_settings(os.getcwd())
    record = parse_receipt_text(raw_text, threshold=settings.fuzzy_threshold)
    anomalous = is_anomalous(record)
    _print_json({"record": enrich_receipt(record).as_dict(), "anomalous": anomalous})
    return 0


def _handle_ocr(ns: argparse.Namespace) -> int:
    data = _read_image(ns.image)
    if data is None:
        return 2
    settings = load_settings(os.getcwd())
    try:
        text = TesseractOcr(settings.tesseract_cmd).read_text(data, ns.lang or settings.ocr_lang)
    except ReceiptPipelineError as e:
        LOG.error(str(e))
        return 1
    print(text)
    return 0


def _handle_extract(ns: argparse.Namespace) -> int:
    data = _read_image(ns.image)
    if data is None:
        return 2
    settings = load_settings(os.getcwd())
    pipeline = build_pipeline(settings, escalate=not ns.no_escalation)
    try:
        outcome = pipeline.process_image(data, ns.lang)
    except ReceiptPipelineError as e:
        LOG.error(f"Extraction failed: {e}")
        return 1
    _print_json(_outcome_json(outcome))
    return 0


def _handle_batch(ns: argparse.Namespace) -> int:
    if not os.path.isdir(ns.dir):
        LOG.error(f"Not a directory: {ns.dir}")
        return 2
    paths = list_receipt_images(ns.dir)
    if not paths:
        LOG.warning(f"No receipt images in {ns.dir}")
        return 0
    settings = load_settings(os.getcwd())
    pipeline = build_pipeline(settings, escalate=not ns.no_escalation)
    items = process_batch(paths, pipeline, max_workers=ns.workers or settings.max_workers, lang=ns.lang)
    for item in items:
        if item.ok:
            _print_json(_outcome_json(item.outcome, path=item.path), pretty=False)
        else:
            _print_json({"path": item.path, "error": str(item.error)}, pretty=False)
    return 0 if all(item.ok for item in items) else 1


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.info(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="receipt-ocr",
        description="Read Turkish receipts into structured records (OCR, field extraction, escalation).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Extract fields from an OCR text file (no OCR, no escalation).")
    parse.add_argument("--text", required=True, help="Path to a UTF-8 text file with OCR output")
    parse.set_defaults(handler=_handle_parse)

    ocr = subparsers.add_parser("ocr", help="Run offline OCR on one image and print the raw text.")
    ocr.add_argument("--image", required=True)
    ocr.add_argument("--lang", help="Tesseract language hint (default: OCR_LANG or tur+eng)")
    ocr.set_defaults(handler=_handle_ocr)

    extract = subparsers.add_parser("extract", help="Run the full pipeline on one image.")
    extract.add_argument("--image", required=True)
    extract.add_argument("--lang")
    extract.add_argument("--no-escalation", action="store_true", help="Never call cloud OCR or the LLM")
    extract.set_defaults(handler=_handle_extract)

    batch = subparsers.add_parser("batch", help="Run the full pipeline on every image in a directory.")
    batch.add_argument("--dir", required=True)
    batch.add_argument("--workers", type=int, help="Parallel receipts (default: MAX_WORKERS)")
    batch.add_argument("--lang")
    batch.add_argument("--no-escalation", action="store_true")
    batch.set_defaults(handler=_handle_batch)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
