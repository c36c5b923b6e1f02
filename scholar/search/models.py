"""Shared data models for paper discovery."""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PaperData(BaseModel):
    """A single paper returned by the discovery service."""

    name: str
    author: str
    year: Optional[int] = None
    abstract: Optional[str] = None
    doi: Optional[str] = None
    research_question: Optional[str] = None
    major_findings: Optional[str] = None
    suggestions: Optional[str] = None


class CrawlProgress(BaseModel):
    """Progress snapshot pushed to the caller while a search runs."""

    status: str = ""
    completed: int = 0
    total: int = 100
    percentage: int = 0


class ActivityItem(BaseModel):
    """One line of the search activity log."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:7])
    type: Literal["analyzing", "success", "info"]
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Optional[str] = None


class CrawlResult(BaseModel):
    """Outcome of one search, successful or not."""

    search_id: Optional[int] = None
    sources: list[str] = Field(default_factory=list)
    activities: list[ActivityItem] = Field(default_factory=list)
    summary: str = ""
    papers: list[PaperData] = Field(default_factory=list)
    success: bool = True
