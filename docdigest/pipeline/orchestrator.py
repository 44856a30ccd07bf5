"""Per-document orchestration: memory gate, parse, summarize, extract, persist.

One attempt counter drives two failure branches:

- memory gate closed: wait, double the delay, move to the next attempt;
- processing error (parse or persist): move to the next attempt at once.

The final attempt runs even when the gate is closed, so a document is never
starved indefinitely. Nothing raised inside an attempt escapes ``process``;
exhaustion is logged and reported through ``ProcessingOutcome.succeeded``.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from docdigest.core.config import (
    INITIAL_RETRY_DELAY_MS,
    MAX_RETRY_COUNT,
    PipelineConfig,
)
from docdigest.core.database import SummaryDatabase, registry
from docdigest.core.errors import DocdigestError, ResourceExhaustion
from docdigest.parsers.models import ParsedDocument
from docdigest.parsers.pdf_parser import parse_pdf
from docdigest.pipeline.memory import MemoryGate, MemoryProbe
from docdigest.pipeline.models import PipelineEvent, ProcessingOutcome, ProcessingState
from docdigest.text.keywords import extract_keywords
from docdigest.text.summarizer import SummaryLength, summarize, summary_length_for

logger = logging.getLogger(__name__)

Observer = Callable[[PipelineEvent], None]


# ── DocumentPipeline ─────────────────────────────────────────────────


class DocumentPipeline:
    """Drives single documents through the pipeline under a retry policy.

    Collaborators are injectable: *parser* turns a path into a
    ParsedDocument, *store* receives the upsert (defaults to the shared
    registry connection, opened on first write), *sleep* takes seconds.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        store: SummaryDatabase | None = None,
        parser: Callable[[str], ParsedDocument] = parse_pdf,
        probe: MemoryProbe | None = None,
        sleep: Callable[[float], None] = time.sleep,
        observer: Observer | None = None,
    ):
        self.config = config or PipelineConfig()
        self._store = store
        self._parser = parser
        self.probe = probe or MemoryProbe()
        self.gate = MemoryGate(self.probe, self.config.memory.min_free_bytes)
        self._sleep = sleep
        self._observer = observer
        self._sentence_counts = {
            SummaryLength.SHORT: self.config.summary.short_sentences,
            SummaryLength.MEDIUM: self.config.summary.medium_sentences,
            SummaryLength.LONG: self.config.summary.long_sentences,
        }

    # ── Public API ───────────────────────────────────────────

    def process(
        self,
        path: str,
        max_attempts: int | None = None,
        initial_delay_ms: int | None = None,
    ) -> ProcessingOutcome:
        """Process one document with memory gating and retries. Never raises."""
        if max_attempts is None:
            max_attempts = self.config.retry.max_attempts
        delay_ms = max(
            0,
            initial_delay_ms
            if initial_delay_ms is not None
            else self.config.retry.initial_delay_ms,
        )

        t_start = time.perf_counter()
        rss_start = self._read_rss()
        errors: list[str] = []
        attempts = 0
        result: tuple[str, list[str]] | None = None
        self._emit("queued", path, 0, ProcessingState.PENDING)

        for attempt in range(1, max_attempts + 1):
            attempts = attempt
            is_final = attempt == max_attempts

            try:
                self.gate.require()
            except ResourceExhaustion as exc:
                if not is_final:
                    logger.warning(
                        "Low memory, delaying processing of %s by %d ms (attempt %d/%d): %s",
                        path,
                        delay_ms,
                        attempt,
                        max_attempts,
                        exc,
                    )
                    errors.append(f"attempt {attempt}: {exc}")
                    self._emit("memory_gated", path, attempt, ProcessingState.MEMORY_GATED)
                    self._sleep(delay_ms / 1000)
                    delay_ms *= 2
                    continue
                logger.warning(
                    "Low memory on final attempt for %s, processing anyway: %s", path, exc
                )
            except Exception:
                logger.warning(
                    "Memory readings unavailable for %s on attempt %d/%d, processing anyway",
                    path,
                    attempt,
                    max_attempts,
                    exc_info=True,
                )

            try:
                result = self._run_attempt(path, attempt)
                break
            except DocdigestError as exc:
                logger.error(
                    "Error processing %s on attempt %d/%d: %s",
                    path,
                    attempt,
                    max_attempts,
                    exc,
                )
                errors.append(f"attempt {attempt}: {exc}")
            except Exception as exc:
                logger.exception(
                    "Unexpected error processing %s on attempt %d/%d",
                    path,
                    attempt,
                    max_attempts,
                )
                errors.append(f"attempt {attempt}: {type(exc).__name__}: {exc}")

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        rss_end = self._read_rss()
        memory_delta = 0 if rss_start is None or rss_end is None else rss_end - rss_start

        if result is None:
            logger.error("Failed to process %s after %d attempts", path, attempts)
            self._emit("failed", path, attempts, ProcessingState.FAILED)
            return ProcessingOutcome(
                path=path,
                succeeded=False,
                state=ProcessingState.FAILED,
                attempts=attempts,
                errors=errors,
                elapsed_ms=elapsed_ms,
                memory_delta_bytes=memory_delta,
            )

        summary, keywords = result
        logger.info("Successfully processed %s", path)
        logger.info("Time taken for %s: %.2f ms", path, elapsed_ms)
        logger.info(
            "Memory delta for %s: %.2f MB", path, memory_delta / (1024 * 1024)
        )
        self._emit("succeeded", path, attempts, ProcessingState.SUCCEEDED)
        return ProcessingOutcome(
            path=path,
            summary=summary,
            keywords=keywords,
            succeeded=True,
            state=ProcessingState.SUCCEEDED,
            attempts=attempts,
            errors=errors,
            elapsed_ms=elapsed_ms,
            memory_delta_bytes=memory_delta,
        )

    # ── Single Attempt ───────────────────────────────────────

    def _run_attempt(self, path: str, attempt: int) -> tuple[str, list[str]]:
        self._emit("parsing", path, attempt, ProcessingState.PARSING)
        parsed = self._parser(path)
        text = parsed.text

        self._emit("summarizing", path, attempt, ProcessingState.SUMMARIZING)
        length = summary_length_for(
            text,
            self.config.summary.short_threshold,
            self.config.summary.medium_threshold,
        )
        summary = summarize(text, length, self._sentence_counts[length])

        self._emit("extracting", path, attempt, ProcessingState.EXTRACTING)
        keywords = extract_keywords(
            text,
            self.config.keywords.domain_vocabulary,
            self.config.keywords.max_keywords,
        )

        self._emit("persisting", path, attempt, ProcessingState.PERSISTING)
        store = self._store or registry.acquire(self.config.database_path)
        store.upsert_summary(parsed.metadata.path, summary, keywords)
        return summary, keywords

    # ── Memory Readings ──────────────────────────────────────

    def _read_rss(self) -> int | None:
        try:
            return self.probe.process_rss_bytes()
        except Exception:
            logger.debug("Could not read process RSS", exc_info=True)
            return None

    # ── Observer ─────────────────────────────────────────────

    def _emit(self, event: str, path: str, attempt: int, state: ProcessingState) -> None:
        if self._observer is None:
            return
        try:
            self._observer(
                PipelineEvent(
                    event=event,
                    timestamp=datetime.now(timezone.utc),
                    path=path,
                    attempt=attempt,
                    state=state,
                )
            )
        except Exception:
            logger.warning("Progress observer failed on %r for %s", event, path, exc_info=True)


# ── Module-level Entry Point ─────────────────────────────────────────


def process_document(
    path: str,
    max_attempts: int = MAX_RETRY_COUNT,
    initial_delay_ms: int = INITIAL_RETRY_DELAY_MS,
    *,
    pipeline: DocumentPipeline | None = None,
) -> ProcessingOutcome:
    """Process one PDF with the default pipeline unless one is given."""
    pipeline = pipeline or DocumentPipeline()
    return pipeline.process(path, max_attempts, initial_delay_ms)
