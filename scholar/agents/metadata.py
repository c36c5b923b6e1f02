"""Two-call metadata extraction: bibliographic fields, then content summary."""

import json
import logging
import re
from datetime import datetime
from typing import Callable, Optional

from scholar.agents.completion import CompletionDispatcher
from scholar.agents.models import ExtractedPaperMetadata
from scholar.core.errors import MetadataParseFailure, PipelineFailure
from scholar.parsers.pdf_parser import convert_text_to_markdown, extract_text_from_pdf

logger = logging.getLogger(__name__)

METADATA_CHUNK = 3000
CONTENT_CHUNK = 6000

_METADATA_KEYS = ("title", "authors", "doi", "year")
_CONTENT_KEYS = ("background", "research_question", "major_findings", "suggestions")

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_YEAR_RE = re.compile(r"^\d{4}$")


# ── Prompt Builders ──────────────────────────────────────────────────


def build_metadata_prompt(markdown: str) -> str:
    """Prompt for title/authors/doi/year over the first METADATA_CHUNK chars."""
    chunk = markdown[:METADATA_CHUNK]
    return f"""Analyze this academic paper text and extract the following metadata. Return ONLY a JSON object with these fields (omit any fields you don't find):
{{
  "title": "paper title",
  "authors": "author names",
  "doi": "DOI if present",
  "year": "publication year (as a number)"
}}

Important:
- Look for the title at the beginning of the text
- Authors are usually listed after the title
- DOI might be in the format "doi: 10.xxxx/xxxxx" or "https://doi.org/10.xxxx/xxxxx"
- Year is usually a 4-digit number near the beginning of the paper

Text:
{chunk}"""


def build_content_prompt(markdown: str) -> str:
    """Prompt for background/question/findings/suggestions over CONTENT_CHUNK chars."""
    chunk = markdown[:CONTENT_CHUNK]
    return f"""Analyze this academic paper excerpt and extract the following information. Return ONLY a JSON object with these fields (omit any fields you don't find):
{{
  "background": "brief summary of the paper's background and context",
  "research_question": "main research questions or objectives",
  "major_findings": "key findings and results",
  "suggestions": "future research suggestions or implications"
}}

Important:
- Background: Look for sections like "Introduction", "Background", or "Abstract"
- Research Question: Look for explicit questions or objectives
- Major Findings: Look for results, conclusions, or key findings
- Suggestions: Look for future work, implications, or recommendations

Text:
{chunk}"""


# ── Response Parsing ─────────────────────────────────────────────────


def parse_json_object(content: str) -> dict:
    """Decode the outermost {...} span of a model response.

    Raises MetadataParseFailure if there is no span or it is not a JSON object.
    """
    match = _JSON_OBJECT_RE.search(content or "")
    if not match:
        raise MetadataParseFailure("No JSON object in model response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise MetadataParseFailure(f"Invalid JSON in model response: {exc}") from exc
    if not isinstance(data, dict):
        raise MetadataParseFailure("Model response JSON is not an object")
    return data


def _coerce_fields(data: dict, keys: tuple[str, ...]) -> dict:
    """Keep known keys only. Text becomes str; year must be a 4-digit number."""
    fields = {}
    for key in keys:
        value = data.get(key)
        if value is None or value == "":
            continue
        if key == "year":
            text = str(value).strip()
            if _YEAR_RE.match(text):
                fields["year"] = int(text)
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        fields[key] = str(value)
    return fields


def _ask(dispatcher: CompletionDispatcher, prompt: str, keys: tuple[str, ...], label: str) -> dict:
    try:
        response = dispatcher.generate_completion(prompt)
    except Exception as exc:
        raise PipelineFailure(f"{label} completion failed: {exc}") from exc

    try:
        return _coerce_fields(parse_json_object(response), keys)
    except MetadataParseFailure as exc:
        logger.warning("Failed to parse %s JSON: %s", label, exc)
        return {}


# ── Pipeline ─────────────────────────────────────────────────────────


def extract_metadata(markdown: str, dispatcher: CompletionDispatcher) -> ExtractedPaperMetadata:
    """Run the metadata call, then the content call, and merge the results.

    Unparseable responses degrade to missing fields. A failing completion
    call raises PipelineFailure.
    """
    logger.info("Starting AI analysis, markdown length: %d", len(markdown))

    metadata = _ask(dispatcher, build_metadata_prompt(markdown), _METADATA_KEYS, "metadata")
    content = _ask(dispatcher, build_content_prompt(markdown), _CONTENT_KEYS, "content")

    result = ExtractedPaperMetadata(**metadata, **content, full_text=markdown)
    logger.info(
        "AI analysis complete: %d fields found",
        len(metadata) + len(content),
    )
    return result


def fallback_metadata(markdown: str) -> ExtractedPaperMetadata:
    """Minimal record used when the AI pipeline fails."""
    return ExtractedPaperMetadata(
        title="",
        authors="Unknown",
        year=datetime.now().year,
        full_text=markdown,
    )


def analyze_with_ai(markdown: str, dispatcher: CompletionDispatcher) -> ExtractedPaperMetadata:
    """extract_metadata, falling back to a minimal record instead of raising."""
    try:
        return extract_metadata(markdown, dispatcher)
    except PipelineFailure as exc:
        logger.error("AI analysis failed: %s", exc)
        return fallback_metadata(markdown)


def process_pdf(
    data: bytes,
    filename: str,
    dispatcher: CompletionDispatcher,
    on_progress: Optional[Callable[[int], None]] = None,
) -> tuple[ExtractedPaperMetadata, str]:
    """Extract, structure and analyze one PDF.

    Returns (metadata, markdown). Extraction errors propagate; AI errors
    fall back to the minimal record. Missing title/authors/year are filled
    from the filename, "Unknown" and the current year.
    """
    report = on_progress or (lambda _pct: None)
    logger.info("Processing PDF: %s (%d bytes)", filename, len(data))

    report(20)
    text = extract_text_from_pdf(data)

    report(40)
    markdown = convert_text_to_markdown(text)

    report(60)
    extracted = analyze_with_ai(markdown, dispatcher)

    report(80)
    result = extracted.model_copy(
        update={
            "title": extracted.title or re.sub(r"\.pdf$", "", filename, flags=re.IGNORECASE),
            "authors": extracted.authors or "Unknown",
            "year": extracted.year or datetime.now().year,
            "full_text": markdown,
        }
    )

    report(100)
    return result, markdown
