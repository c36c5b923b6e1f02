"""PDF text extraction (PyMuPDF) and heuristic Markdown structuring."""

import logging
import re
from pathlib import Path

import fitz  # PyMuPDF

from scholar.core.errors import NoTextContent, PdfExtractionError

logger = logging.getLogger(__name__)

# (matcher, heading) checked in order; first match wins
_SECTIONS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"abstract"), "Abstract"),
    (re.compile(r"introduction"), "Introduction"),
    (re.compile(r"method(s|ology)?"), "Methods"),
    (re.compile(r"result"), "Results"),
    (re.compile(r"discussion"), "Discussion"),
    (re.compile(r"conclusion"), "Conclusion"),
]


# ── Text Extraction ──────────────────────────────────────────────────


def extract_text_from_pdf(data: bytes) -> str:
    """Return the plain text of every page, pages separated by a blank line.

    Pages that fail to read are skipped. Raises NoTextContent when nothing
    is left, PdfExtractionError when the document cannot be opened.
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PdfExtractionError(f"Could not extract text from PDF: {exc}") from exc

    pages: list[str] = []
    try:
        logger.info("PDF loaded, pages: %d", len(doc))
        for page_num in range(len(doc)):
            try:
                pages.append(doc[page_num].get_text())
            except Exception as exc:
                logger.warning("Failed to read page %d: %s", page_num + 1, exc)
                continue
    finally:
        doc.close()

    full_text = "\n\n".join(pages).strip()
    if not full_text:
        raise NoTextContent()
    return full_text


def extract_text_from_file(pdf_path: str | Path) -> str:
    """Convenience wrapper around extract_text_from_pdf for a file on disk."""
    return extract_text_from_pdf(Path(pdf_path).read_bytes())


# ── Markdown Structuring ─────────────────────────────────────────────


def _section_heading(line: str) -> str | None:
    lower = line.lower()
    for pattern, heading in _SECTIONS:
        if pattern.search(lower):
            return heading
    return None


def convert_text_to_markdown(text: str) -> str:
    """Turn extracted text into light Markdown.

    The first line becomes the title; a line mentioning a known section
    opens it with a ``##`` heading and is not repeated as body text. A line
    naming the section already open is body text. Everything else is
    copied through one line at a time.
    """
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    parts: list[str] = []
    current: str | None = None
    for i, line in enumerate(lines):
        heading = _section_heading(line)
        if heading and heading != current:
            current = heading
            parts.append(f"\n## {heading}\n\n")
            continue

        if i == 0:
            parts.append(f"# {line}\n\n")
        else:
            parts.append(f"{line}\n")

    return "".join(parts)
