#!/usr/bin/env python3
"""Summarize and extract keywords from a set of PDFs."""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from docdigest.core.config import PipelineConfig, load_pipeline_config
from docdigest.core.database import registry
from docdigest.core.errors import PersistenceError
from docdigest.pipeline.batch import BatchRunner, discover_pdfs
from docdigest.pipeline.models import PipelineEvent
from docdigest.pipeline.orchestrator import DocumentPipeline

logger = logging.getLogger("pipeline")


# ── Logging ──────────────────────────────────────────────────────────


def configure_logging(verbose: bool = False, error_log: str = "error.log") -> None:
    """Console logging plus an append-only error log file."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    handler = logging.FileHandler(error_log)
    handler.setLevel(logging.ERROR)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(name)s] %(message)s")
    )
    logging.getLogger().addHandler(handler)


def _log_event(event: PipelineEvent) -> None:
    logger.debug("[%s] %s attempt=%d %s", event.event, event.path, event.attempt, event.state.value)


# ── Pipeline ─────────────────────────────────────────────────────────


def run_pipeline(
    inputs: list[str],
    config: PipelineConfig,
    cleanup: bool = False,
) -> dict:
    """Register, process, and report on every PDF found in *inputs*."""
    t_start = time.time()
    pdf_paths = discover_pdfs(inputs)
    if not pdf_paths:
        logger.info("No PDFs found in %s", ", ".join(inputs))
        return {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    stats: dict = {}
    try:
        with registry.session(config.database_path) as db:
            for path in pdf_paths:
                try:
                    db.store_initial_metadata(path, Path(path).stat().st_size)
                except (OSError, PersistenceError) as exc:
                    logger.error("Could not register %s: %s", path, exc)

            pipeline = DocumentPipeline(config, store=db, observer=_log_event)
            runner = BatchRunner(pipeline, workers=config.workers, cleanup=cleanup)
            stats = runner.run(pdf_paths)
            stats["database"] = db.get_stats()
    finally:
        elapsed = time.time() - t_start
        logger.info("=" * 60)
        logger.info("Total time taken: %.2f seconds", elapsed)
        logger.info("Files processed: %d", stats.get("succeeded", 0))
        registry.release()

    return stats


# ── CLI ──────────────────────────────────────────────────────────────


def main():
    parser = argparse.ArgumentParser(description="Summarize PDFs and extract keywords")
    parser.add_argument("inputs", nargs="+", help="PDF files or directories containing PDFs")
    parser.add_argument("--config", default=None, help="Path to pipeline YAML config")
    parser.add_argument("--db", default=None, help="Override the SQLite database path")
    parser.add_argument("--workers", type=int, default=None, help="Concurrent documents")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Delete each PDF after it is processed successfully",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)
    config = load_pipeline_config(args.config)
    if args.db:
        config.database_path = Path(args.db)
    if args.workers:
        config.workers = args.workers

    try:
        stats = run_pipeline(args.inputs, config, cleanup=args.cleanup)
    except PersistenceError as exc:
        logger.error("Database unavailable: %s", exc)
        sys.exit(1)
    print(json.dumps(stats, indent=2))
    sys.exit(0 if stats.get("failed", 0) == 0 else 1)


if __name__ == "__main__":
    main()
