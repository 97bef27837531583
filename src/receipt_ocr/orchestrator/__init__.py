"""Receipt orchestration: the per-receipt state machine and batch fan-out."""

from .pipeline import ExtractionOutcome, ReceiptPipeline, build_pipeline
from .batch import BatchItem, IMAGE_EXTENSIONS, list_receipt_images, process_batch

__all__ = [
    "ExtractionOutcome",
    "ReceiptPipeline",
    "build_pipeline",
    "BatchItem",
    "IMAGE_EXTENSIONS",
    "list_receipt_images",
    "process_batch",
]
