"""Structured extraction of a whole receipt by a language model.

The model gets the cloud-OCR lines and must answer with one JSON object using
the Turkish field names below. Its answer replaces the local record entirely.
"""

import json
import re
from typing import Any, Dict, Optional, Sequence

import httpx
import requests
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..config import PipelineSettings
from ..domain.models import ReceiptRecord, TransactionType
from ..domain.normalize import (
    canonical_date,
    normalize_amount,
    normalize_category,
    normalize_payment_type,
    parse_percent,
)
from ..errors import LlmRequestError, LlmResponseError, PipelineStage
from ..logging import get_logger

LOG = get_logger("llm")

LLM_FIELDS = ("firmaAd", "fisNo", "tutar", "kdv", "kdvOran", "islemTarihi", "islemTuru", "odemeTuru")

PROMPT_TEMPLATE = """Sen bir fiş/fatura metni yorumlayıcısısın. Aşağıdaki metni incele ve yalnızca JSON formatında yanıt ver.
Kurallar:
1. Alanlar: firmaAd, fisNo, tutar, kdv, kdvOran, islemTarihi, islemTuru, odemeTuru
2. Toplam tutar ve kdv tutarı değerleri Türk Lirası formatında olmalı (örn: "1.234,56")
3. İşlem tarihi formatı dd.mm.yyyy olmalı
4. İşlem tipi yalnızca şu değerlerden biri olabilir: "ALIŞVERİŞ", "YEMEK", "AKARYAKIT", "OTOPARK", "ELEKTRONİK", "İLAÇ", "KIRTASİYE", "DİĞER"
5. Ödeme tipi yalnızca şu değerlerden biri olabilir: "Kredi Kartı", "Nakit", "Mobil Ödeme", "Diğer"
6. Alan adları çift tırnak içinde olmalı, JSON dışında hiçbir şey yazma.

Metin:
{text}
"""

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def build_prompt(lines: Sequence[str]) -> str:
    return PROMPT_TEMPLATE.format(text="\n".join(lines))


def strip_code_fences(raw: str) -> str:
    return _FENCE.sub("", raw or "").strip()


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def record_from_llm_fields(data: Dict[str, Any]) -> ReceiptRecord:
    """Map the model's Turkish keys onto a fresh :class:`ReceiptRecord`."""
    transaction_type = None
    category = normalize_category(_text(data.get("islemTuru")))
    if category is not None:
        transaction_type = TransactionType(category=category, vat_rate=parse_percent(data.get("kdvOran")))

    return ReceiptRecord(
        business_name=_text(data.get("firmaAd")),
        transaction_date=canonical_date(_text(data.get("islemTarihi"))),
        receipt_number=_text(data.get("fisNo")),
        products=(),
        vat_amount=normalize_amount(data.get("kdv")) if data.get("kdv") else None,
        total_amount=normalize_amount(data.get("tutar")) if data.get("tutar") else None,
        transaction_type=transaction_type,
        payment_type=normalize_payment_type(_text(data.get("odemeTuru"))),
    )


def parse_llm_response(raw: str) -> ReceiptRecord:
    """Fence-strip and decode the model reply; anything but a JSON object raises."""
    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOG.error("LLM reply is not valid JSON (%s); first 300 chars: %r", e, cleaned[:300])
        raise LlmResponseError(PipelineStage.LLM_EXTRACT, f"reply is not valid JSON: {e}", raw_response=raw) from e
    if not isinstance(data, dict):
        LOG.error("LLM reply is JSON but not an object: %s", type(data).__name__)
        raise LlmResponseError(
            PipelineStage.LLM_EXTRACT, f"expected a JSON object, got {type(data).__name__}", raw_response=raw
        )
    missing = [k for k in LLM_FIELDS if k not in data]
    if missing:
        LOG.debug("LLM reply lacks field(s): %s", ", ".join(missing))
    return record_from_llm_fields(data)


class ReceiptExtractor:
    """Lines in, raw model text out."""

    name = "base"

    def extract(self, lines: Sequence[str]) -> str:
        raise NotImplementedError


class OpenAIReceiptExtractor(ReceiptExtractor):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4.1-mini",
        timeout: float = 120.0,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        if client is None:
            http_client = httpx.Client(
                timeout=httpx.Timeout(connect=10.0, read=float(timeout), write=30.0, pool=10.0),
            )
            client = OpenAI(api_key=api_key, base_url=base_url, http_client=http_client, max_retries=0)
        self.client = client

    def extract(self, lines: Sequence[str]) -> str:
        LOG.info("Calling OpenAI chat completions model='%s' lines=%d", self.model, len(lines))
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(lines)}],
                response_format={"type": "json_object"},
                temperature=0,
            )
        except (APIConnectionError, APITimeoutError) as e:
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"network/timeout calling OpenAI: {e}") from e
        except APIStatusError as e:
            raise LlmRequestError(
                PipelineStage.LLM_EXTRACT, f"OpenAI returned HTTP {getattr(e, 'status_code', '?')}"
            ) from e
        except OpenAIError as e:
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"OpenAI request failed: {e}") from e

        choices = getattr(resp, "choices", None) or []
        content = choices[0].message.content if choices else None
        return content or ""


class OllamaReceiptExtractor(ReceiptExtractor):
    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b",
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        base = base_url.rstrip("/")
        self.endpoint = base if base.endswith("/api/chat") else base + "/api/chat"
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def extract(self, lines: Sequence[str]) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(lines)}],
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }
        LOG.info("Calling Ollama %s model='%s' lines=%d", self.endpoint, self.model, len(lines))
        try:
            resp = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"Ollama request failed: {e}") from e
        if resp.status_code >= 400:
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"Ollama HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, "Ollama returned a non-JSON envelope") from e
        if not isinstance(data, dict):
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"Ollama envelope is {type(data).__name__}, expected an object")
        if data.get("error"):
            raise LlmRequestError(PipelineStage.LLM_EXTRACT, f"Ollama error: {data.get('error')}")
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        return content or data.get("response") or ""


def build_llm_extractor(settings: PipelineSettings) -> Optional[ReceiptExtractor]:
    if settings.llm_backend == "ollama":
        return OllamaReceiptExtractor(settings.ollama_url, settings.ollama_model, settings.llm_timeout)
    if not settings.openai_api_key:
        LOG.warning("OPENAI_API_KEY not set; LLM escalation disabled")
        return None
    return OpenAIReceiptExtractor(settings.openai_api_key, settings.openai_model, settings.llm_timeout)
