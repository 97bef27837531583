from __future__ import annotations

from enum import Enum
from typing import Optional, Union


class PipelineStage(str, Enum):
    OFFLINE_OCR = "OFFLINE_OCR"
    LOCAL_EXTRACT = "LOCAL_EXTRACT"
    CHECK = "CHECK"
    CLOUD_OCR = "CLOUD_OCR"
    LLM_EXTRACT = "LLM_EXTRACT"
    ACCEPT = "ACCEPT"


class ReceiptPipelineError(Exception):
    """A pipeline-level failure; ``stage`` names the state that broke."""

    def __init__(self, stage: Union[PipelineStage, str], message: str) -> None:
        self.stage = stage.value if isinstance(stage, PipelineStage) else str(stage)
        self.message = message
        super().__init__(f"[{self.stage}] {message}")


class OcrError(ReceiptPipelineError):
    pass


class LlmRequestError(ReceiptPipelineError):
    pass


class LlmResponseError(ReceiptPipelineError):
    def __init__(
        self, stage: Union[PipelineStage, str], message: str, *, raw_response: Optional[str] = None
    ) -> None:
        super().__init__(stage, message)
        self.raw_response = raw_response
