import json
import os
import sys
import threading
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath("src"))

from receipt_ocr.config import PipelineSettings
from receipt_ocr.domain.models import PaymentType, TransactionCategory
from receipt_ocr.errors import LlmResponseError, OcrError, PipelineStage
from receipt_ocr.orchestrator import (
    ReceiptPipeline,
    list_receipt_images,
    process_batch,
)

TODAY = date.today().strftime("%d.%m.%Y")

GOOD_TEXT = "\n".join(
    [
        "ABC GIDA TİC. LTD. ŞTİ.",
        TODAY,
        "TOPLAM 275,00",
        "KDV %10 25,00",
    ]
)

# no KDV line, so the local read is anomalous
MISSING_VAT_TEXT = "MARKET\nTOPLAM 100,00"

LLM_REPLY = json.dumps(
    {
        "firmaAd": "YILDIZ MARKET",
        "fisNo": "0042",
        "tutar": "100,00",
        "kdv": "9,09",
        "kdvOran": "%10",
        "islemTarihi": TODAY,
        "islemTuru": "ALIŞVERİŞ",
        "odemeTuru": "Nakit",
    },
    ensure_ascii=False,
)


class FakeOfflineOcr:
    """Treats the image bytes as UTF-8 receipt text."""

    def __init__(self):
        self.calls = []

    def read_text(self, image_bytes, lang):
        self.calls.append(lang)
        try:
            return image_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise OcrError(PipelineStage.OFFLINE_OCR, f"unreadable image: {e}") from e


class FakeCloudOcr:
    def __init__(self, lines=None, error=None):
        self.lines = ["YILDIZ MARKET", "TOPLAM 100,00", "KDV 9,09"] if lines is None else lines
        self.error = error
        self.calls = 0

    def read_lines(self, image_bytes):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.lines)


class FakeLlm:
    def __init__(self, reply=LLM_REPLY):
        self.reply = reply
        self.seen = None

    def extract(self, lines):
        self.seen = list(lines)
        return self.reply


def test_good_local_read_is_accepted_without_escalation():
    cloud, llm = FakeCloudOcr(), FakeLlm()
    pipeline = ReceiptPipeline(FakeOfflineOcr(), cloud, llm)

    outcome = pipeline.process_image(GOOD_TEXT.encode("utf-8"))

    assert outcome.stages == (
        PipelineStage.OFFLINE_OCR,
        PipelineStage.LOCAL_EXTRACT,
        PipelineStage.CHECK,
        PipelineStage.ACCEPT,
    )
    assert not outcome.anomalous
    assert not outcome.escalated
    assert outcome.record.business_name == "ABC GIDA"
    assert outcome.record.transaction_date == TODAY
    assert outcome.record.total_amount == 275.0
    assert outcome.record.vat_amount == 25.0
    assert cloud.calls == 0
    assert llm.seen is None


def test_offline_ocr_uses_configured_language():
    offline = FakeOfflineOcr()
    pipeline = ReceiptPipeline(offline, settings=PipelineSettings(ocr_lang="tur"))
    pipeline.process_image(GOOD_TEXT.encode("utf-8"))
    pipeline.process_image(GOOD_TEXT.encode("utf-8"), lang="eng")
    assert offline.calls == ["tur", "eng"]


def test_anomalous_read_is_replaced_by_model_record():
    cloud, llm = FakeCloudOcr(), FakeLlm()
    pipeline = ReceiptPipeline(FakeOfflineOcr(), cloud, llm)

    outcome = pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))

    assert outcome.anomalous
    assert outcome.escalated
    assert outcome.stages == (
        PipelineStage.OFFLINE_OCR,
        PipelineStage.LOCAL_EXTRACT,
        PipelineStage.CHECK,
        PipelineStage.CLOUD_OCR,
        PipelineStage.LLM_EXTRACT,
        PipelineStage.ACCEPT,
    )
    assert llm.seen == ["YILDIZ MARKET", "TOPLAM 100,00", "KDV 9,09"]
    record = outcome.record
    assert record.business_name == "YILDIZ MARKET"
    assert record.receipt_number == "0042"
    assert record.total_amount == 100.0
    assert record.vat_amount == 9.09
    assert record.transaction_type.category is TransactionCategory.SHOPPING
    assert record.transaction_type.vat_rate == 10
    assert record.payment_type is PaymentType.CASH


def test_malformed_model_reply_fails_the_receipt():
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(), FakeLlm(reply="bu bir JSON değil"))
    with pytest.raises(LlmResponseError) as exc:
        pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))
    assert exc.value.stage == "LLM_EXTRACT"
    assert exc.value.raw_response == "bu bir JSON değil"


def test_model_record_is_enriched_from_rate():
    reply = json.dumps({"tutar": "110,00", "kdvOran": "%10", "islemTuru": "YEMEK"})
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(), FakeLlm(reply=reply))

    record = pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8")).record

    assert record.total_amount == 110.0
    assert record.vat_amount == 10.0
    assert record.transaction_type.category is TransactionCategory.FOOD


def test_without_escalation_collaborators_the_local_record_is_returned():
    pipeline = ReceiptPipeline(FakeOfflineOcr())
    outcome = pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))
    assert outcome.anomalous
    assert not outcome.escalated
    assert outcome.record.total_amount == 100.0
    assert outcome.record.vat_amount is None
    assert PipelineStage.CLOUD_OCR not in outcome.stages


def test_empty_cloud_text_keeps_local_record():
    llm = FakeLlm()
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(lines=[]), llm)
    outcome = pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))
    assert not outcome.escalated
    assert outcome.record.total_amount == 100.0
    assert llm.seen is None


def test_cloud_failure_raises_by_default():
    error = OcrError(PipelineStage.CLOUD_OCR, "Textract failed")
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(error=error), FakeLlm())
    with pytest.raises(OcrError) as exc:
        pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))
    assert exc.value.stage == "CLOUD_OCR"


def test_cloud_failure_can_fall_back_to_local_record():
    error = OcrError(PipelineStage.CLOUD_OCR, "Textract failed")
    settings = PipelineSettings(fail_on_escalation_error=False)
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(error=error), FakeLlm(), settings=settings)

    outcome = pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))

    assert not outcome.escalated
    assert outcome.record.total_amount == 100.0
    assert PipelineStage.CLOUD_OCR in outcome.stages
    assert PipelineStage.LLM_EXTRACT not in outcome.stages


def test_offline_failure_without_escalation_raises():
    pipeline = ReceiptPipeline(FakeOfflineOcr())
    with pytest.raises(OcrError) as exc:
        pipeline.process_image(b"\xff\xfe\xfa")
    assert exc.value.stage == "OFFLINE_OCR"


def test_offline_failure_is_recovered_by_escalation():
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(), FakeLlm())
    outcome = pipeline.process_image(b"\xff\xfe\xfa")
    assert outcome.escalated
    assert outcome.record.business_name == "YILDIZ MARKET"


def test_process_text_without_image_never_escalates():
    cloud = FakeCloudOcr()
    pipeline = ReceiptPipeline(None, cloud, FakeLlm())
    outcome = pipeline.process_text(MISSING_VAT_TEXT)
    assert outcome.stages[0] is PipelineStage.LOCAL_EXTRACT
    assert not outcome.escalated
    assert cloud.calls == 0


def test_escalation_gate_is_released():
    gate = threading.BoundedSemaphore(1)
    pipeline = ReceiptPipeline(FakeOfflineOcr(), FakeCloudOcr(), FakeLlm(reply="{"), escalation_gate=gate)
    with pytest.raises(LlmResponseError):
        pipeline.process_image(MISSING_VAT_TEXT.encode("utf-8"))
    assert gate.acquire(blocking=False)
    gate.release()


def test_batch_keeps_order_and_isolates_failures(tmp_path):
    good = tmp_path / "a.jpg"
    good.write_bytes(GOOD_TEXT.encode("utf-8"))
    bad = tmp_path / "b.jpg"
    bad.write_bytes(b"\xff\xfe\xfa")
    missing = tmp_path / "c.jpg"
    paths = [str(good), str(bad), str(missing), str(good)]

    items = process_batch(paths, ReceiptPipeline(FakeOfflineOcr()), max_workers=3)

    assert [item.path for item in items] == paths
    assert [item.ok for item in items] == [True, False, False, True]
    assert isinstance(items[1].error, OcrError)
    assert isinstance(items[2].error, OSError)
    assert items[0].outcome.record.total_amount == 275.0
    assert items[3].outcome.record == items[0].outcome.record


class FlakyOfflineOcr(FakeOfflineOcr):
    def read_text(self, image_bytes, lang):
        if image_bytes.startswith(b"TIMEOUT"):
            raise RuntimeError("Tesseract process timeout")
        return super().read_text(image_bytes, lang)


def test_batch_survives_unexpected_collaborator_errors(tmp_path):
    good = tmp_path / "a.jpg"
    good.write_bytes(GOOD_TEXT.encode("utf-8"))
    stuck = tmp_path / "b.jpg"
    stuck.write_bytes(b"TIMEOUT")

    items = process_batch([str(good), str(stuck)], ReceiptPipeline(FlakyOfflineOcr()), max_workers=2)

    assert [item.ok for item in items] == [True, False]
    assert isinstance(items[1].error, RuntimeError)
    assert items[0].outcome.record.total_amount == 275.0


def test_batch_of_nothing():
    assert process_batch([], ReceiptPipeline()) == []


def test_list_receipt_images_filters_by_extension(tmp_path):
    (tmp_path / "a.jpg").write_bytes(b"")
    (tmp_path / "B.PNG").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("x")
    (tmp_path / "d.jpg").mkdir()

    found = [os.path.basename(p) for p in list_receipt_images(str(tmp_path))]

    assert found == ["B.PNG", "a.jpg"]
