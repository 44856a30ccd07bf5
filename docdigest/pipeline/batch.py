"""Run many documents through the pipeline on a bounded worker pool."""

import logging
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from docdigest.core.config import DEFAULT_WORKERS
from docdigest.pipeline.models import ProcessingOutcome
from docdigest.pipeline.orchestrator import DocumentPipeline

logger = logging.getLogger(__name__)


# ── Discovery ────────────────────────────────────────────────────────


def discover_pdfs(inputs: Iterable[str | Path]) -> list[str]:
    """Expand directories to their *.pdf files; keep file paths as given."""
    found: list[str] = []
    for item in inputs:
        p = Path(item)
        if p.is_dir():
            found.extend(str(f) for f in sorted(p.glob("*.pdf")))
        else:
            found.append(str(p))
    return found


# ── Batch Runner ─────────────────────────────────────────────────────


class BatchRunner:
    """Processes documents concurrently, each path at most once per runner."""

    def __init__(
        self,
        pipeline: DocumentPipeline,
        workers: int = DEFAULT_WORKERS,
        cleanup: bool = False,
    ):
        self.pipeline = pipeline
        self.workers = workers
        self.cleanup = cleanup
        self.processed: set[str] = set()
        self._lock = threading.Lock()

    def run(self, paths: Iterable[str]) -> dict:
        """Process *paths*; returns stats dict."""
        paths = list(paths)
        total = len(paths)
        stats = {"total": total, "succeeded": 0, "failed": 0, "skipped": 0}
        logger.info("Processing %d documents with %d workers", total, self.workers)

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {executor.submit(self._process_one, p): p for p in paths}
            for i, future in enumerate(as_completed(futures), 1):
                outcome = future.result()
                if outcome is None:
                    stats["skipped"] += 1
                elif outcome.succeeded:
                    stats["succeeded"] += 1
                else:
                    stats["failed"] += 1

                if i % 10 == 0 or i == total:
                    logger.info("Processed %d/%d documents", i, total)

        logger.info(
            "Batch complete: %d succeeded, %d failed, %d skipped",
            stats["succeeded"],
            stats["failed"],
            stats["skipped"],
        )
        return stats

    def _process_one(self, path: str) -> ProcessingOutcome | None:
        with self._lock:
            if path in self.processed:
                logger.info("Skipping already processed %s", path)
                return None
            # Claim the path so a duplicate in the same batch is skipped
            self.processed.add(path)

        outcome = self.pipeline.process(path)
        if not outcome.succeeded:
            with self._lock:
                self.processed.discard(path)
            return outcome

        if self.cleanup:
            try:
                Path(path).unlink()
                logger.info("Deleted processed PDF: %s", path)
            except OSError as exc:
                logger.error("Could not delete %s: %s", path, exc)
        return outcome


def run_batch(
    paths: Iterable[str],
    pipeline: DocumentPipeline,
    workers: int = DEFAULT_WORKERS,
    cleanup: bool = False,
) -> dict:
    """Convenience wrapper: one-off BatchRunner over *paths*."""
    return BatchRunner(pipeline, workers=workers, cleanup=cleanup).run(paths)
