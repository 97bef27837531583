from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import OcrError, PipelineStage
from ..logging import get_logger

LOG = get_logger("textract")


class TextractOcr:
    """Cloud OCR via AWS Textract ``detect_document_text``."""

    def __init__(self, client: Any = None, region: str = "eu-central-1", timeout: int = 60) -> None:
        if client is None:
            config = Config(
                connect_timeout=min(timeout, 10),
                read_timeout=timeout,
                retries={"max_attempts": 0},
            )
            client = boto3.client("textract", region_name=region, config=config)
        self.client = client

    def read_lines(self, image_bytes: bytes) -> List[str]:
        try:
            resp = self.client.detect_document_text(Document={"Bytes": image_bytes})
        except (BotoCoreError, ClientError) as e:
            raise OcrError(PipelineStage.CLOUD_OCR, f"Textract failed: {e}") from e
        lines = [
            b["Text"]
            for b in resp.get("Blocks", [])
            if b.get("BlockType") == "LINE" and b.get("Text")
        ]
        LOG.info("Textract returned %d line(s)", len(lines))
        return lines


def build_cloud_ocr(region: str, timeout: int) -> Optional[TextractOcr]:
    try:
        return TextractOcr(region=region, timeout=timeout)
    except BotoCoreError as e:
        LOG.warning("Textract client unavailable (%s); cloud escalation disabled", e)
        return None
