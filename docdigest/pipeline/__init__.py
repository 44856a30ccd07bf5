"""Pipeline entry points."""

from docdigest.pipeline.batch import BatchRunner, discover_pdfs, run_batch
from docdigest.pipeline.orchestrator import DocumentPipeline, process_document

__all__ = [
    "BatchRunner",
    "DocumentPipeline",
    "discover_pdfs",
    "process_document",
    "run_batch",
]
