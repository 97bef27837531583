from io import BytesIO
from typing import Optional

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import DEFAULT_OCR_LANG
from ..errors import OcrError, PipelineStage
from ..logging import get_logger

LOG = get_logger("tesseract")

# Receipts photographed from afar come out too small for Tesseract
MIN_WIDTH = 1000
TESSERACT_CONFIG = "--psm 6"


class TesseractOcr:
    """Offline OCR: image bytes in, raw text out."""

    def __init__(self, tesseract_cmd: Optional[str] = None, config: str = TESSERACT_CONFIG) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.config = config

    def preprocess(self, image_bytes: bytes) -> Image.Image:
        try:
            img = Image.open(BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise OcrError(PipelineStage.OFFLINE_OCR, f"unreadable image: {e}") from e
        img = ImageOps.exif_transpose(img)
        img = ImageOps.autocontrast(img.convert("L"))
        if img.width < MIN_WIDTH:
            ratio = MIN_WIDTH / float(img.width)
            img = img.resize((MIN_WIDTH, int(img.height * ratio)), Image.Resampling.LANCZOS)
        return img

    def read_text(self, image_bytes: bytes, lang: str = DEFAULT_OCR_LANG) -> str:
        img = self.preprocess(image_bytes)
        LOG.debug("Running tesseract lang=%s size=%sx%s", lang, img.width, img.height)
        try:
            text = pytesseract.image_to_string(img, lang=lang, config=self.config)
        except pytesseract.TesseractNotFoundError as e:
            raise OcrError(PipelineStage.OFFLINE_OCR, "tesseract binary not found; set TESSERACT_CMD") from e
        except pytesseract.TesseractError as e:
            raise OcrError(PipelineStage.OFFLINE_OCR, f"tesseract failed: {e}") from e
        except RuntimeError as e:
            # pytesseract signals its timeout with a bare RuntimeError
            raise OcrError(PipelineStage.OFFLINE_OCR, f"tesseract aborted: {e}") from e
        LOG.info("Offline OCR produced %d chars", len(text or ""))
        return text or ""
