"""Shared data models for the completion dispatcher and PDF pipeline."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Provider = Literal[
    "openai",
    "google",
    "anthropic",
    "deepseek",
    "openrouter",
    "siliconflow",
    "ollama",
]


# ── Model Configuration ──────────────────────────────────────────────


class AIModelInput(BaseModel):
    """Payload for registering a new AI model."""

    name: str
    provider: Provider
    api_key: str
    base_url: Optional[str] = None
    model_name: str


class AIModelUpdate(BaseModel):
    """Partial update for an existing AI model. Unset fields are left alone."""

    name: Optional[str] = None
    provider: Optional[Provider] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: Optional[str] = None


class AIModelConfig(AIModelInput):
    """A stored AI model configuration."""

    id: int
    is_default: bool = False
    created_at: datetime
    updated_at: datetime


# ── Completion Requests ──────────────────────────────────────────────


class ContextRecord(BaseModel):
    """A paper-like record handed to the model as grounding context."""

    name: str
    author: Optional[str] = None
    year: Optional[int] = None
    abstract: Optional[str] = None
    doi: Optional[str] = None
    research_question: Optional[str] = None
    major_findings: Optional[str] = None
    suggestions: Optional[str] = None


class CompletionRequest(BaseModel):
    """One prompt plus the optional selectors and context used to answer it."""

    prompt: str
    model_id: Optional[int] = None
    context: Optional[str] = None
    context_records: list[ContextRecord] = Field(default_factory=list)


# ── PDF Metadata ─────────────────────────────────────────────────────


class ExtractedPaperMetadata(BaseModel):
    """Metadata pulled out of one PDF. Fields the model did not return stay None."""

    title: Optional[str] = None
    authors: Optional[str] = None
    doi: Optional[str] = None
    year: Optional[int] = None
    background: Optional[str] = None
    research_question: Optional[str] = None
    major_findings: Optional[str] = None
    suggestions: Optional[str] = None
    full_text: Optional[str] = None


# ── Batch Upload ─────────────────────────────────────────────────────


class FileOutcome(BaseModel):
    """Result of uploading and analyzing a single file in a batch."""

    filename: str
    status: Literal["success", "error"]
    pdf_id: Optional[int] = None
    error: Optional[str] = None
    metadata: Optional[ExtractedPaperMetadata] = None


class BatchUploadResult(BaseModel):
    """Per-file outcomes for one batch upload."""

    batch_id: int
    outcomes: list[FileOutcome]

    @property
    def succeeded(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status == "success"]

    @property
    def failed(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status == "error"]
