"""Shared data models for parsers."""

from pydantic import BaseModel, ConfigDict, Field


class PdfMetadata(BaseModel):
    """File-level facts about a parsed PDF."""

    model_config = ConfigDict(frozen=True)

    path: str
    size_bytes: int = Field(ge=0)
    page_count: int = Field(ge=0)
    info: dict[str, str] = Field(default_factory=dict)


class ParsedDocument(BaseModel):
    """Plain text of a PDF plus its metadata."""

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: PdfMetadata
