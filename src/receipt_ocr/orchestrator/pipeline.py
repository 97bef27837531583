"""Escalation state machine for one receipt.

OFFLINE_OCR -> LOCAL_EXTRACT -> CHECK -> ACCEPT, or, when the local read is
anomalous, CHECK -> CLOUD_OCR -> LLM_EXTRACT -> ACCEPT. A single escalation is
attempted per receipt and the model's record replaces the local one.
"""

from __future__ import annotations

import contextlib
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..config import PipelineSettings
from ..domain.models import ReceiptRecord
from ..domain.patterns import RECEIPT_PATTERNS, ReceiptPatterns
from ..errors import OcrError, PipelineStage, ReceiptPipelineError
from ..extraction.anomaly import is_anomalous
from ..extraction.enrich import enrich_receipt
from ..extraction.llm import build_llm_extractor, parse_llm_response
from ..extraction.scan import parse_receipt_lines, split_lines
from ..logging import get_logger
from ..ocr.tesseract import TesseractOcr
from ..ocr.textract import build_cloud_ocr

LOG = get_logger("pipeline")


@dataclass(frozen=True)
class ExtractionOutcome:
    record: ReceiptRecord
    stages: Tuple[PipelineStage, ...]
    escalated: bool
    anomalous: bool


class ReceiptPipeline:
    """Runs receipts through local extraction and, if needed, escalation.

    Collaborators are duck-typed:

    - ``offline_ocr.read_text(image_bytes, lang) -> str``
    - ``cloud_ocr.read_lines(image_bytes) -> list[str]``
    - ``llm.extract(lines) -> str`` (raw JSON text)

    Any of them may be None; escalation then degrades to the local record.
    """

    def __init__(
        self,
        offline_ocr: Any = None,
        cloud_ocr: Any = None,
        llm: Any = None,
        *,
        patterns: ReceiptPatterns = RECEIPT_PATTERNS,
        settings: Optional[PipelineSettings] = None,
        escalation_gate: Optional[threading.BoundedSemaphore] = None,
    ) -> None:
        self.offline_ocr = offline_ocr
        self.cloud_ocr = cloud_ocr
        self.llm = llm
        self.patterns = patterns
        self.settings = settings or PipelineSettings()
        self.escalation_gate = escalation_gate

    @property
    def can_escalate(self) -> bool:
        return self.cloud_ocr is not None and self.llm is not None

    def process_image(self, image_bytes: bytes, lang: Optional[str] = None) -> ExtractionOutcome:
        lang = lang or self.settings.ocr_lang
        stages: List[PipelineStage] = [PipelineStage.OFFLINE_OCR]
        ocr_error: Optional[OcrError] = None
        raw_text = ""
        if self.offline_ocr is None:
            ocr_error = OcrError(PipelineStage.OFFLINE_OCR, "no offline OCR engine configured")
        else:
            LOG.info("OFFLINE_OCR: reading %d byte(s) lang=%s", len(image_bytes), lang)
            try:
                raw_text = self.offline_ocr.read_text(image_bytes, lang) or ""
            except OcrError as e:
                LOG.warning("Offline OCR failed, continuing with empty text: %s", e)
                ocr_error = e
        return self._run(raw_text, image_bytes, stages, ocr_error)

    def process_text(self, raw_text: str, image_bytes: Optional[bytes] = None) -> ExtractionOutcome:
        """Start at LOCAL_EXTRACT with text that was already recognized."""
        return self._run(raw_text, image_bytes, [], None)

    def _run(
        self,
        raw_text: str,
        image_bytes: Optional[bytes],
        stages: List[PipelineStage],
        ocr_error: Optional[OcrError],
    ) -> ExtractionOutcome:
        stages.append(PipelineStage.LOCAL_EXTRACT)
        lines = split_lines(raw_text)
        LOG.info("LOCAL_EXTRACT: %d line(s)", len(lines))
        record = parse_receipt_lines(lines, self.patterns, self.settings.fuzzy_threshold)

        stages.append(PipelineStage.CHECK)
        anomalous = is_anomalous(record)
        LOG.info("CHECK: total=%s vat=%s anomalous=%s", record.total_amount, record.vat_amount, anomalous)

        escalated = False
        if anomalous:
            replacement = None
            if image_bytes is None:
                LOG.warning("Anomalous read but no image bytes to escalate with; keeping local record")
            elif not self.can_escalate:
                LOG.warning("Anomalous read but cloud OCR/LLM not configured; keeping local record")
            else:
                replacement = self._escalate(image_bytes, stages)
            if replacement is not None:
                record, escalated = replacement, True
            elif ocr_error is not None:
                raise ocr_error

        record = enrich_receipt(record)
        stages.append(PipelineStage.ACCEPT)
        LOG.info("ACCEPT: escalated=%s stages=%s", escalated, "->".join(s.value for s in stages))
        return ExtractionOutcome(record=record, stages=tuple(stages), escalated=escalated, anomalous=anomalous)

    def _gate(self):
        return self.escalation_gate if self.escalation_gate is not None else contextlib.nullcontext()

    def _escalate(self, image_bytes: bytes, stages: List[PipelineStage]) -> Optional[ReceiptRecord]:
        LOG.warning("Escalating to cloud OCR + LLM extraction")
        with self._gate():
            stages.append(PipelineStage.CLOUD_OCR)
            try:
                lines = self.cloud_ocr.read_lines(image_bytes)
            except ReceiptPipelineError as e:
                return self._escalation_failed(e)
            if not lines:
                LOG.warning("CLOUD_OCR returned no text; keeping local record")
                return None
            LOG.info("CLOUD_OCR: %d line(s)", len(lines))

            stages.append(PipelineStage.LLM_EXTRACT)
            try:
                raw = self.llm.extract(lines)
            except ReceiptPipelineError as e:
                return self._escalation_failed(e)
        record = parse_llm_response(raw)
        LOG.info("LLM_EXTRACT: business=%r total=%s vat=%s", record.business_name, record.total_amount, record.vat_amount)
        return record

    def _escalation_failed(self, error: ReceiptPipelineError) -> None:
        if self.settings.fail_on_escalation_error:
            raise error
        LOG.error("Escalation failed, keeping local record: %s", error)
        return None


def build_pipeline(settings: PipelineSettings, *, escalate: bool = True) -> ReceiptPipeline:
    """Wire the production collaborators from ``settings``."""
    cloud_ocr = llm = None
    if escalate:
        cloud_ocr = build_cloud_ocr(settings.aws_region, settings.cloud_ocr_timeout)
        llm = build_llm_extractor(settings)
    return ReceiptPipeline(
        offline_ocr=TesseractOcr(settings.tesseract_cmd),
        cloud_ocr=cloud_ocr,
        llm=llm,
        settings=settings,
        escalation_gate=threading.BoundedSemaphore(settings.max_escalations),
    )
