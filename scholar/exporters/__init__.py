"""Export convenience functions."""

import logging
import re
from pathlib import Path

from scholar.core.database import ResearchDatabase
from scholar.exporters.spreadsheet import (
    export_papers_csv,
    export_papers_excel,
    pdf_rows_as_papers,
)

logger = logging.getLogger(__name__)


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", text).strip("_").lower() or "export"


def _write_both(papers: list[dict], stem: str, output_dir: str | None, db: ResearchDatabase) -> dict:
    out = Path(output_dir) if output_dir else db.root / "exports"
    out.mkdir(parents=True, exist_ok=True)

    paths = {}

    xlsx_path = str(out / f"{stem}.xlsx")
    export_papers_excel(papers, xlsx_path)
    paths["xlsx"] = xlsx_path

    csv_path = str(out / f"{stem}.csv")
    export_papers_csv(papers, csv_path)
    paths["csv"] = csv_path

    logger.info("Exports written to %s", out)
    return paths


def export_search(db: ResearchDatabase, search_id: int, output_dir: str | None = None) -> dict:
    """Export a search's papers. Returns dict of file paths created."""
    search = db.get_search(search_id)
    if search is None:
        raise ValueError(f"Search {search_id} not found")
    papers = db.get_papers_for_search(search_id)
    return _write_both(papers, f"search_{_slug(search['query'])}", output_dir, db)


def export_batch(db: ResearchDatabase, batch_id: int, output_dir: str | None = None) -> dict:
    """Export a batch's analyzed PDFs. Returns dict of file paths created."""
    batch = db.get_batch(batch_id)
    if batch is None:
        raise ValueError(f"Batch {batch_id} not found")
    rows = db.get_pdf_uploads(db.get_batch_pdf_ids(batch_id))
    return _write_both(pdf_rows_as_papers(rows), f"batch_{_slug(batch['name'])}", output_dir, db)
