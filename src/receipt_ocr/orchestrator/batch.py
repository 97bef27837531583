import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..errors import ReceiptPipelineError
from ..logging import get_logger
from .pipeline import ExtractionOutcome, ReceiptPipeline

LOG = get_logger("batch")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp")


@dataclass(frozen=True)
class BatchItem:
    path: str
    outcome: Optional[ExtractionOutcome] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def list_receipt_images(directory: str) -> List[str]:
    """Image files directly inside ``directory``, sorted by name."""
    names = sorted(os.listdir(directory))
    return [
        os.path.join(directory, n)
        for n in names
        if n.lower().endswith(IMAGE_EXTENSIONS) and os.path.isfile(os.path.join(directory, n))
    ]


def _process_one(path: str, pipeline: ReceiptPipeline, lang: Optional[str]) -> BatchItem:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        LOG.error(f"Cannot read {path}: {e}")
        return BatchItem(path=path, error=e)
    try:
        outcome = pipeline.process_image(data, lang)
    except ReceiptPipelineError as e:
        LOG.error(f"Pipeline failed for {path}: {e}")
        return BatchItem(path=path, error=e)
    except Exception as e:
        LOG.exception(f"Unexpected error processing {path}")
        return BatchItem(path=path, error=e)
    return BatchItem(path=path, outcome=outcome)


def process_batch(
    paths: Iterable[str],
    pipeline: ReceiptPipeline,
    *,
    max_workers: int = 4,
    lang: Optional[str] = None,
) -> List[BatchItem]:
    """Process receipts concurrently, one per task; results keep input order.

    A failing receipt is reported on its own item and does not affect the rest.
    """
    paths = list(paths)
    if not paths:
        return []
    workers = max(1, min(max_workers, len(paths)))
    LOG.info(f"Processing {len(paths)} receipt(s) with {workers} worker(s)")

    results: Dict[int, BatchItem] = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_process_one, p, pipeline, lang): i for i, p in enumerate(paths)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    failed = sum(1 for item in results.values() if not item.ok)
    LOG.info(f"Batch finished: {len(paths) - failed} ok, {failed} failed")
    return [results[i] for i in range(len(paths))]
