"""Paper table exports: Excel and CSV."""

import csv
import logging

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

COLUMNS = (
    "name",
    "author",
    "year",
    "abstract",
    "doi",
    "research_question",
    "major_findings",
    "suggestions",
)

_COLUMN_WIDTHS = (40, 30, 10, 60, 25, 60, 60, 60)

SHEET_TITLE = "Research Results"


# ── Helpers ──────────────────────────────────────────────────────────


def _build_rows(papers: list[dict]) -> list[list[str]]:
    """One row per paper in COLUMNS order; missing values become ''."""
    if not papers:
        raise ValueError("No data to export")

    rows = []
    for paper in papers:
        row = []
        for col in COLUMNS:
            value = paper.get(col)
            row.append("" if value is None else str(value))
        rows.append(row)
    return rows


def pdf_rows_as_papers(rows: list[dict]) -> list[dict]:
    """Map pdf_uploads rows onto the paper column names."""
    return [
        {
            "name": r.get("title") or r.get("filename"),
            "author": r.get("authors"),
            "year": r.get("year"),
            "abstract": r.get("background"),
            "doi": r.get("doi"),
            "research_question": r.get("research_question"),
            "major_findings": r.get("major_findings"),
            "suggestions": r.get("suggestions"),
        }
        for r in rows
    ]


# ── CSV Export ───────────────────────────────────────────────────────


def export_papers_csv(papers: list[dict], output_path: str) -> None:
    rows = _build_rows(papers)

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        writer.writerows(rows)

    logger.info("Papers CSV exported to %s (%d rows)", output_path, len(rows))


# ── Excel Export ─────────────────────────────────────────────────────


def export_papers_excel(papers: list[dict], output_path: str) -> None:
    """Export papers as a single-sheet workbook with a bold header."""
    rows = _build_rows(papers)
    logger.info("Exporting %d papers to Excel file: %s", len(rows), output_path)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(COLUMNS))
    for row in rows:
        ws.append(row)

    for cell in ws[1]:
        cell.font = Font(bold=True)
    for idx, width in enumerate(_COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    wb.save(output_path)
    logger.info("Excel file created: %s", output_path)
