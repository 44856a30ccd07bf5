"""Shared data models for the processing pipeline."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ProcessingState(str, Enum):
    """Where a document is in its processing attempt."""

    PENDING = "pending"
    MEMORY_GATED = "memory_gated"
    PARSING = "parsing"
    SUMMARIZING = "summarizing"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineEvent(BaseModel):
    """A state transition, delivered to the progress observer."""

    event: str
    timestamp: datetime
    path: str
    attempt: int = Field(ge=0)
    state: ProcessingState


class ProcessingOutcome(BaseModel):
    """Final result for one document."""

    path: str
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    succeeded: bool = False
    state: ProcessingState = ProcessingState.PENDING
    attempts: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0
    memory_delta_bytes: int = 0
