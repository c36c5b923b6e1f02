"""Chat over stored searches, single PDFs and PDF batches."""

import logging
from typing import Literal

from scholar.agents.completion import CompletionDispatcher
from scholar.agents.models import ContextRecord
from scholar.core.database import ResearchDatabase

logger = logging.getLogger(__name__)

ContextKind = Literal["search", "pdf", "batch"]

_ABSTRACT_FALLBACK_CHARS = 500


# ── Context Records ──────────────────────────────────────────────────


def paper_row_to_record(row: dict) -> ContextRecord:
    return ContextRecord(
        name=row["name"],
        author=row.get("author"),
        year=row.get("year"),
        abstract=row.get("abstract"),
        doi=row.get("doi"),
        research_question=row.get("research_question"),
        major_findings=row.get("major_findings"),
        suggestions=row.get("suggestions"),
    )


def pdf_row_to_record(row: dict) -> ContextRecord:
    """Map an upload row to a record; abstract falls back to the full text head."""
    full_text = row.get("full_text") or ""
    return ContextRecord(
        name=row.get("title") or row["filename"],
        author=row.get("authors") or "Unknown",
        year=row.get("year"),
        abstract=row.get("background") or full_text[:_ABSTRACT_FALLBACK_CHARS] or None,
        doi=row.get("doi"),
        research_question=row.get("research_question"),
        major_findings=row.get("major_findings"),
        suggestions=row.get("suggestions"),
    )


def records_for_search(db: ResearchDatabase, search_id: int) -> list[ContextRecord]:
    return [paper_row_to_record(r) for r in db.get_papers_for_search(search_id)]


def records_for_pdf(db: ResearchDatabase, pdf_id: int) -> list[ContextRecord]:
    row = db.get_pdf_upload(pdf_id)
    if row is None:
        raise ValueError(f"PDF {pdf_id} not found")
    return [pdf_row_to_record(row)]


def records_for_batch(db: ResearchDatabase, batch_id: int) -> list[ContextRecord]:
    pdf_ids = db.get_batch_pdf_ids(batch_id)
    if not pdf_ids:
        logger.info("No PDFs found in batch %d", batch_id)
        return []
    return [pdf_row_to_record(r) for r in db.get_pdf_uploads(pdf_ids)]


def load_records(db: ResearchDatabase, kind: ContextKind, item_id: int) -> list[ContextRecord]:
    loaders = {
        "search": records_for_search,
        "pdf": records_for_pdf,
        "batch": records_for_batch,
    }
    return loaders[kind](db, item_id)


# ── Conversation ─────────────────────────────────────────────────────


def summarize_context(kind: ContextKind, records: list[ContextRecord], query: str) -> str:
    """One-line description of what the chat is grounded on."""
    if not records:
        return f'a research query about "{query}"'

    if kind == "search":
        titles = ", ".join(r.name for r in records[:3])
        return (
            f'{len(records)} academic papers related to "{query}". '
            f"Some key papers include: {titles}"
        )
    if kind == "pdf":
        return f'A PDF document titled "{records[0].name or query}".'

    titles = ", ".join(r.name for r in records[:3])
    return f'A batch of {len(records)} PDF documents named "{query}", including: {titles}'


def ask(
    dispatcher: CompletionDispatcher,
    question: str,
    records: list[ContextRecord],
    model_id: int | None = None,
    context: str | None = None,
) -> str:
    """Answer a question grounded on the given records (or free-text context)."""
    logger.info("Chat question over %d records", len(records))
    return dispatcher.generate_completion(
        question,
        model_id=model_id,
        context=context,
        context_records=records,
    )
