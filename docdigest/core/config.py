"""Pipeline configuration: YAML loader and Pydantic models."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from docdigest.text.keywords import MAX_KEYWORDS
from docdigest.text.summarizer import MEDIUM_THRESHOLD, SHORT_THRESHOLD

MIN_FREE_MEMORY = 10 * 1024 * 1024  # bytes
INITIAL_RETRY_DELAY_MS = 5000
MAX_RETRY_COUNT = 5
DEFAULT_WORKERS = 3
DEFAULT_DB_PATH = Path("data") / "documents.db"
DEFAULT_VOCABULARY = ["specific", "domain", "words"]


# ── Sections ─────────────────────────────────────────────────────────


class MemoryConfig(BaseModel):
    """Memory gate floor."""

    min_free_bytes: int = Field(
        default=MIN_FREE_MEMORY,
        ge=0,
        description="System memory must exceed this; process headroom must exceed half",
    )


class RetryConfig(BaseModel):
    """Attempt budget and backoff for a single document."""

    max_attempts: int = Field(default=MAX_RETRY_COUNT, ge=1)
    initial_delay_ms: int = Field(
        default=INITIAL_RETRY_DELAY_MS,
        ge=0,
        description="First memory-gate wait; doubles after every gated attempt",
    )


class SummaryConfig(BaseModel):
    """Summary length thresholds (chars) and sentence counts."""

    short_threshold: int = Field(default=SHORT_THRESHOLD, ge=1)
    medium_threshold: int = Field(default=MEDIUM_THRESHOLD, ge=1)
    short_sentences: int = Field(default=3, ge=1)
    medium_sentences: int = Field(default=5, ge=1)
    long_sentences: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def thresholds_ordered(self) -> "SummaryConfig":
        if self.medium_threshold <= self.short_threshold:
            raise ValueError(
                f"medium_threshold ({self.medium_threshold}) must be greater "
                f"than short_threshold ({self.short_threshold})"
            )
        return self


class KeywordConfig(BaseModel):
    """Keyword cap and the vocabulary keywords are drawn from."""

    max_keywords: int = Field(default=MAX_KEYWORDS, ge=1, le=MAX_KEYWORDS)
    domain_vocabulary: list[str] = Field(
        default_factory=lambda: list(DEFAULT_VOCABULARY)
    )

    @field_validator("domain_vocabulary")
    @classmethod
    def lowercase_vocabulary(cls, v: list[str]) -> list[str]:
        # Extractor compares against lower-cased tokens
        return [w.strip().lower() for w in v if w.strip()]


# ── Top-level ────────────────────────────────────────────────────────


class PipelineConfig(BaseModel):
    """Everything the pipeline and its CLI need to run."""

    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    keywords: KeywordConfig = Field(default_factory=KeywordConfig)
    database_path: Path = DEFAULT_DB_PATH
    workers: int = Field(default=DEFAULT_WORKERS, ge=1)


def load_pipeline_config(path: Optional[str | Path] = None) -> PipelineConfig:
    """Load a YAML pipeline config, or return defaults when *path* is None."""
    if path is None:
        return PipelineConfig()
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return PipelineConfig.model_validate(raw)
