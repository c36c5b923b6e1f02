"""Batch PDF upload: store, analyze, record and link each file, one at a time."""

import logging
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from scholar.agents.completion import CompletionDispatcher
from scholar.agents.metadata import process_pdf
from scholar.agents.models import BatchUploadResult, FileOutcome
from scholar.core.database import ResearchDatabase

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 100 * 1024 * 1024
MAX_FILES = 100


# ── Validation ───────────────────────────────────────────────────────


def validate_batch(
    files: list[Path],
    batch_name: str | None,
    batch_id: int | None,
    max_files: int = MAX_FILES,
    max_file_size: int = MAX_FILE_SIZE,
) -> None:
    """Raise ValueError if the batch cannot be uploaded as given."""
    if not files:
        raise ValueError("Please add at least one PDF file")
    if len(files) > max_files:
        raise ValueError(f"You can only upload up to {max_files} files at once.")

    limit_mb = max_file_size // (1024 * 1024)
    for path in files:
        if not path.is_file():
            raise ValueError(f"{path.name} does not exist.")
        if path.suffix.lower() != ".pdf":
            raise ValueError(f"{path.name} is not a valid PDF file.")
        if path.stat().st_size > max_file_size:
            raise ValueError(f"{path.name} is too large. Maximum size is {limit_mb}MB.")

    if batch_id is None and not (batch_name or "").strip():
        raise ValueError("Please provide a batch name")


# ── Storage ──────────────────────────────────────────────────────────


def store_pdf(db: ResearchDatabase, path: Path) -> Path:
    """Copy a PDF into the library's pdfs/ directory under a timestamped name."""
    dest = db.pdf_dir / f"{int(time.time() * 1000)}-{path.name}"
    shutil.copyfile(path, dest)
    return dest


# ── Single File ──────────────────────────────────────────────────────


def upload_one(
    db: ResearchDatabase,
    dispatcher: CompletionDispatcher,
    path: Path,
    batch_id: int,
) -> FileOutcome:
    """Store, analyze, record and link one PDF. Raises on any failure.

    The stored copy is removed when analysis fails.
    """
    stored = store_pdf(db, path)
    try:
        metadata, markdown = process_pdf(stored.read_bytes(), path.name, dispatcher)
    except Exception:
        stored.unlink(missing_ok=True)
        raise

    pdf_id = db.add_pdf_upload(
        filename=path.name,
        metadata=metadata,
        markdown=markdown,
        stored_path=str(stored),
    )
    db.add_pdf_to_batch(batch_id, pdf_id)

    return FileOutcome(
        filename=path.name, status="success", pdf_id=pdf_id, metadata=metadata
    )


# ── Batch Pipeline ───────────────────────────────────────────────────


def upload_batch(
    db: ResearchDatabase,
    dispatcher: CompletionDispatcher,
    files: list[str | Path],
    batch_name: str | None = None,
    batch_id: int | None = None,
    max_files: int = MAX_FILES,
    max_file_size: int = MAX_FILE_SIZE,
    on_progress: Optional[Callable[[int, FileOutcome], None]] = None,
) -> BatchUploadResult:
    """Upload a batch of PDFs into a new or existing batch.

    Files are processed sequentially; a failure on one file is recorded as
    an error outcome and does not stop the rest.
    """
    paths = [Path(f) for f in files]
    validate_batch(paths, batch_name, batch_id, max_files, max_file_size)

    if batch_id is None:
        batch_id = db.create_batch(batch_name.strip())
        logger.info("Created batch %d '%s'", batch_id, batch_name)
    elif db.get_batch(batch_id) is None:
        raise ValueError(f"Batch {batch_id} not found")

    total = len(paths)
    outcomes: list[FileOutcome] = []

    for i, path in enumerate(paths, 1):
        try:
            outcome = upload_one(db, dispatcher, path, batch_id)
            logger.info("Processed %d/%d: %s", i, total, path.name)
        except Exception as exc:
            logger.error("File %s failed: %s", path.name, exc)
            outcome = FileOutcome(filename=path.name, status="error", error=str(exc))

        outcomes.append(outcome)
        if on_progress:
            on_progress(i, outcome)

    result = BatchUploadResult(batch_id=batch_id, outcomes=outcomes)
    logger.info(
        "Batch %d complete: %d succeeded, %d failed",
        batch_id,
        len(result.succeeded),
        len(result.failed),
    )
    return result
