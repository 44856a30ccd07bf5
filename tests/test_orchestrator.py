"""Tests for the per-document retry and memory-gating orchestrator."""

import logging
from unittest.mock import MagicMock, patch

import psutil
import pytest

from docdigest.core.config import PipelineConfig
from docdigest.core.errors import ExtractionError, PersistenceError
from docdigest.parsers.models import ParsedDocument, PdfMetadata
from docdigest.pipeline.models import ProcessingState
from docdigest.pipeline.orchestrator import DocumentPipeline, process_document

MB = 1024 * 1024
TEXT = "Artificial intelligence and machine learning are crucial fields in data science."
VOCAB = ["artificial", "intelligence", "machine", "learning", "data", "science"]


class FakeProbe:
    def __init__(self, free: int = 1000 * MB, headroom: int = 1000 * MB):
        self.free = free
        self.headroom = headroom

    def free_system_memory_bytes(self) -> int:
        return self.free

    def process_heap_headroom_bytes(self) -> int:
        return self.headroom

    def process_rss_bytes(self) -> int:
        return 50 * MB


class LockedDownMemory(FakeProbe):
    """Every reading fails, as psutil does when /proc is locked down."""

    def free_system_memory_bytes(self) -> int:
        raise psutil.AccessDenied()

    def process_rss_bytes(self) -> int:
        raise psutil.AccessDenied()


def _parsed(path: str = "/pdfs/doc.pdf", text: str = TEXT) -> ParsedDocument:
    return ParsedDocument(
        text=text,
        metadata=PdfMetadata(path=path, size_bytes=len(text), page_count=1),
    )


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture()
def config():
    return PipelineConfig.model_validate({"keywords": {"domain_vocabulary": VOCAB}})


@pytest.fixture()
def store():
    return MagicMock()


@pytest.fixture()
def sleep():
    return MagicMock()


def _pipeline(config, store, sleep, parser=None, probe=None, observer=None):
    return DocumentPipeline(
        config,
        store=store,
        parser=parser or MagicMock(return_value=_parsed()),
        probe=probe or FakeProbe(),
        sleep=sleep,
        observer=observer,
    )


# ── Success ──────────────────────────────────────────────────────────


def test_success_on_first_attempt(config, store, sleep):
    pipeline = _pipeline(config, store, sleep)
    outcome = pipeline.process("/pdfs/doc.pdf")

    assert outcome.succeeded
    assert outcome.state == ProcessingState.SUCCEEDED
    assert outcome.attempts == 1
    assert outcome.errors == []
    assert set(outcome.keywords) == set(VOCAB)
    assert outcome.summary.endswith(".")
    store.upsert_summary.assert_called_once_with(
        "/pdfs/doc.pdf", outcome.summary, outcome.keywords
    )
    sleep.assert_not_called()


def test_persists_under_metadata_path(config, store, sleep):
    parser = MagicMock(return_value=_parsed(path="/abs/doc.pdf"))
    _pipeline(config, store, sleep, parser=parser).process("doc.pdf")
    assert store.upsert_summary.call_args.args[0] == "/abs/doc.pdf"


def test_long_text_uses_long_summary(config, store, sleep):
    text = ". ".join(f"Sentence {i} discusses data science topic {i}" for i in range(200))
    parser = MagicMock(return_value=_parsed(text=text))
    outcome = _pipeline(config, store, sleep, parser=parser).process("/pdfs/doc.pdf")
    assert len(outcome.summary.split(". ")) == 10


def test_success_logs_timing(config, store, sleep, caplog):
    with caplog.at_level(logging.INFO, logger="docdigest.pipeline.orchestrator"):
        _pipeline(config, store, sleep).process("/pdfs/doc.pdf")
    assert "Successfully processed /pdfs/doc.pdf" in caplog.text
    assert "Time taken for /pdfs/doc.pdf" in caplog.text


# ── Processing-Error Retries ─────────────────────────────────────────


def test_persistent_persistence_failure(config, store, sleep):
    store.upsert_summary.side_effect = PersistenceError("database down")
    outcome = _pipeline(config, store, sleep).process("/pdfs/doc.pdf", max_attempts=5)

    assert not outcome.succeeded
    assert outcome.state == ProcessingState.FAILED
    assert outcome.attempts == 5
    assert len(outcome.errors) == 5
    assert store.upsert_summary.call_count == 5
    sleep.assert_not_called()


def test_terminal_failure_logged_at_error(config, store, sleep, caplog):
    store.upsert_summary.side_effect = PersistenceError("database down")
    with caplog.at_level(logging.ERROR, logger="docdigest.pipeline.orchestrator"):
        _pipeline(config, store, sleep).process("/pdfs/doc.pdf", max_attempts=2)
    assert "Failed to process /pdfs/doc.pdf after 2 attempts" in caplog.text


def test_extraction_error_then_success(config, store, sleep):
    parser = MagicMock(side_effect=[ExtractionError("corrupt"), _parsed()])
    outcome = _pipeline(config, store, sleep, parser=parser).process("/pdfs/doc.pdf")

    assert outcome.succeeded
    assert outcome.attempts == 2
    assert len(outcome.errors) == 1
    assert "corrupt" in outcome.errors[0]
    sleep.assert_not_called()


def test_unexpected_error_does_not_propagate(config, store, sleep):
    parser = MagicMock(side_effect=ValueError("boom"))
    outcome = _pipeline(config, store, sleep, parser=parser).process(
        "/pdfs/doc.pdf", max_attempts=3
    )
    assert outcome.state == ProcessingState.FAILED
    assert outcome.attempts == 3
    assert all("ValueError" in e for e in outcome.errors)


# ── Memory Gate ──────────────────────────────────────────────────────


def test_gate_always_closed_forces_final_attempt(config, store, sleep):
    parser = MagicMock(return_value=_parsed())
    probe = FakeProbe(free=0, headroom=0)
    outcome = _pipeline(config, store, sleep, parser=parser, probe=probe).process(
        "/pdfs/doc.pdf", max_attempts=5, initial_delay_ms=5000
    )

    assert parser.call_count == 1
    assert outcome.succeeded
    assert outcome.attempts == 5
    assert [c.args[0] for c in sleep.call_args_list] == [5.0, 10.0, 20.0, 40.0]


def test_gate_closed_single_attempt_runs_immediately(config, store, sleep):
    parser = MagicMock(return_value=_parsed())
    probe = FakeProbe(free=0, headroom=0)
    outcome = _pipeline(config, store, sleep, parser=parser, probe=probe).process(
        "/pdfs/doc.pdf", max_attempts=1
    )
    assert outcome.succeeded
    parser.assert_called_once()
    sleep.assert_not_called()


def test_gate_opens_after_backoff(config, store, sleep):
    probe = FakeProbe(free=0, headroom=0)

    def _free_memory(_seconds):
        probe.free = probe.headroom = 1000 * MB

    sleep.side_effect = _free_memory
    parser = MagicMock(return_value=_parsed())
    outcome = _pipeline(config, store, sleep, parser=parser, probe=probe).process(
        "/pdfs/doc.pdf", initial_delay_ms=100
    )
    assert outcome.succeeded
    assert outcome.attempts == 2
    sleep.assert_called_once_with(0.1)


def test_gated_attempts_and_errors_share_budget(config, store, sleep):
    probe = FakeProbe(free=0, headroom=0)
    store.upsert_summary.side_effect = PersistenceError("down")
    outcome = _pipeline(config, store, sleep, probe=probe).process(
        "/pdfs/doc.pdf", max_attempts=3, initial_delay_ms=1
    )
    assert outcome.state == ProcessingState.FAILED
    assert outcome.attempts == 3
    assert sleep.call_count == 2
    assert store.upsert_summary.call_count == 1


def test_memory_reading_failure_does_not_escape(config, store, sleep):
    parser = MagicMock(return_value=_parsed())
    outcome = _pipeline(config, store, sleep, parser=parser, probe=LockedDownMemory()).process(
        "/pdfs/doc.pdf", max_attempts=3
    )
    assert outcome.succeeded
    assert outcome.attempts == 1
    assert outcome.memory_delta_bytes == 0
    parser.assert_called_once()
    sleep.assert_not_called()


def test_memory_reading_failure_with_failing_store_still_returns(config, store, sleep):
    store.upsert_summary.side_effect = PersistenceError("down")
    outcome = _pipeline(config, store, sleep, probe=LockedDownMemory()).process(
        "/pdfs/doc.pdf", max_attempts=3
    )
    assert outcome.state == ProcessingState.FAILED
    assert outcome.attempts == 3


def test_negative_initial_delay_clamped(config, store, sleep):
    probe = FakeProbe(free=0, headroom=0)
    outcome = _pipeline(config, store, sleep, probe=probe).process(
        "/pdfs/doc.pdf", max_attempts=2, initial_delay_ms=-1
    )
    assert outcome.succeeded
    sleep.assert_called_once_with(0.0)


def test_defaults_come_from_config(store, sleep):
    config = PipelineConfig.model_validate(
        {"retry": {"max_attempts": 2, "initial_delay_ms": 250}}
    )
    probe = FakeProbe(free=0, headroom=0)
    outcome = _pipeline(config, store, sleep, probe=probe).process("/pdfs/doc.pdf")
    assert outcome.attempts == 2
    sleep.assert_called_once_with(0.25)


# ── Observer ─────────────────────────────────────────────────────────


def test_observer_receives_transitions(config, store, sleep):
    events = []
    _pipeline(config, store, sleep, observer=events.append).process("/pdfs/doc.pdf")
    assert [e.event for e in events] == [
        "queued",
        "parsing",
        "summarizing",
        "extracting",
        "persisting",
        "succeeded",
    ]
    assert events[-1].state == ProcessingState.SUCCEEDED
    assert all(e.path == "/pdfs/doc.pdf" for e in events)


def test_observer_sees_gating_and_failure(config, store, sleep):
    events = []
    store.upsert_summary.side_effect = PersistenceError("down")
    probe = FakeProbe(free=0, headroom=0)
    _pipeline(config, store, sleep, probe=probe, observer=events.append).process(
        "/pdfs/doc.pdf", max_attempts=2
    )
    states = [e.state for e in events]
    assert ProcessingState.MEMORY_GATED in states
    assert states[-1] == ProcessingState.FAILED


def test_observer_errors_are_ignored(config, store, sleep):
    observer = MagicMock(side_effect=RuntimeError("display gone"))
    outcome = _pipeline(config, store, sleep, observer=observer).process("/pdfs/doc.pdf")
    assert outcome.succeeded


# ── Entry Point ──────────────────────────────────────────────────────


def test_process_document_with_pipeline(config, store, sleep):
    store.upsert_summary.side_effect = PersistenceError("down")
    outcome = process_document(
        "/pdfs/doc.pdf", max_attempts=3, pipeline=_pipeline(config, store, sleep)
    )
    assert outcome.attempts == 3
    assert not outcome.succeeded


def test_default_store_comes_from_registry(config, sleep):
    shared = MagicMock()
    pipeline = DocumentPipeline(
        config,
        parser=MagicMock(return_value=_parsed()),
        probe=FakeProbe(),
        sleep=sleep,
    )
    with patch("docdigest.pipeline.orchestrator.registry") as reg:
        reg.acquire.return_value = shared
        outcome = pipeline.process("/pdfs/doc.pdf")
    reg.acquire.assert_called_once_with(config.database_path)
    shared.upsert_summary.assert_called_once()
    assert outcome.succeeded


def test_registry_failure_is_retried(config, sleep):
    pipeline = DocumentPipeline(
        config,
        parser=MagicMock(return_value=_parsed()),
        probe=FakeProbe(),
        sleep=sleep,
    )
    with patch("docdigest.pipeline.orchestrator.registry") as reg:
        reg.acquire.side_effect = PersistenceError("cannot connect")
        outcome = pipeline.process("/pdfs/doc.pdf", max_attempts=2)
    assert outcome.state == ProcessingState.FAILED
    assert reg.acquire.call_count == 2
