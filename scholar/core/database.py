"""SQLite library store: searches, papers, PDF uploads, batches, keys and models."""

import logging
import re
import sqlite3
import unicodedata
from datetime import datetime, timezone
from pathlib import Path

from scholar.agents.models import (
    AIModelConfig,
    AIModelInput,
    AIModelUpdate,
    ExtractedPaperMetadata,
)
from scholar.search.models import PaperData

logger = logging.getLogger(__name__)

DATA_ROOT = Path("data")

# ── Schema DDL ───────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS searches (
    id              INTEGER PRIMARY KEY,
    query           TEXT NOT NULL,
    timestamp       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_searches_timestamp ON searches(timestamp);

CREATE TABLE IF NOT EXISTS papers (
    id                  INTEGER PRIMARY KEY,
    search_id           INTEGER REFERENCES searches(id) ON DELETE CASCADE,
    name                TEXT NOT NULL,
    author              TEXT NOT NULL,
    year                INTEGER,
    abstract            TEXT,
    doi                 TEXT,
    research_question   TEXT,
    major_findings      TEXT,
    suggestions         TEXT,
    created_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_papers_search_id ON papers(search_id);

CREATE TABLE IF NOT EXISTS pdf_uploads (
    id                  INTEGER PRIMARY KEY,
    filename            TEXT NOT NULL,
    stored_path         TEXT,
    title               TEXT,
    authors             TEXT,
    year                INTEGER,
    doi                 TEXT,
    background          TEXT,
    full_text           TEXT,
    markdown_content    TEXT,
    research_question   TEXT,
    major_findings      TEXT,
    suggestions         TEXT,
    created_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_pdf_uploads_created_at ON pdf_uploads(created_at);

CREATE TABLE IF NOT EXISTS pdf_batches (
    id              INTEGER PRIMARY KEY,
    name            TEXT NOT NULL,
    timestamp       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS batch_pdfs (
    id              INTEGER PRIMARY KEY,
    batch_id        INTEGER NOT NULL REFERENCES pdf_batches(id) ON DELETE CASCADE,
    pdf_id          INTEGER NOT NULL REFERENCES pdf_uploads(id) ON DELETE CASCADE,
    UNIQUE (batch_id, pdf_id)
);

CREATE INDEX IF NOT EXISTS idx_batch_pdfs_batch_id ON batch_pdfs(batch_id);
CREATE INDEX IF NOT EXISTS idx_batch_pdfs_pdf_id   ON batch_pdfs(pdf_id);

CREATE TABLE IF NOT EXISTS api_keys (
    id              INTEGER PRIMARY KEY,
    service         TEXT NOT NULL,
    api_key         TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_models (
    id              INTEGER PRIMARY KEY,
    name            TEXT NOT NULL,
    provider        TEXT NOT NULL,
    api_key         TEXT NOT NULL,
    base_url        TEXT,
    model_name      TEXT NOT NULL,
    is_default      INTEGER NOT NULL DEFAULT 0 CHECK (is_default IN (0, 1)),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

-- At most one default model
CREATE UNIQUE INDEX IF NOT EXISTS idx_ai_models_single_default
    ON ai_models(is_default) WHERE is_default = 1;
"""

_PDF_TEXT_FIELDS = (
    "title",
    "authors",
    "doi",
    "background",
    "research_question",
    "major_findings",
    "suggestions",
    "full_text",
)


# ── ResearchDatabase ─────────────────────────────────────────────────


class ResearchDatabase:
    """SQLite store for one research library."""

    def __init__(self, library: str, data_root: Path | None = None):
        root = (data_root or DATA_ROOT) / library
        root.mkdir(parents=True, exist_ok=True)
        (root / "pdfs").mkdir(exist_ok=True)
        (root / "exports").mkdir(exist_ok=True)

        self.root = root
        self.pdf_dir = root / "pdfs"
        self.db_path = root / "library.db"
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # ── Searches & Papers ────────────────────────────────────

    def add_search(self, query: str) -> int:
        """Record a search query. Returns the search id."""
        cur = self._conn.execute(
            "INSERT INTO searches (query, timestamp) VALUES (?, ?)", (query, _now())
        )
        self._conn.commit()
        return cur.lastrowid

    def get_search(self, search_id: int) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM searches WHERE id = ?", (search_id,)
        ).fetchone()
        return dict(row) if row else None

    def list_searches(self) -> list[dict]:
        """All searches, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM searches ORDER BY timestamp DESC, id DESC"
        ).fetchall()
        return [dict(r) for r in rows]

    def add_papers(self, papers: list[PaperData], search_id: int) -> int:
        """Bulk insert discovered papers under a search. Returns count added."""
        if not papers:
            logger.info("No papers to save")
            return 0

        now = _now()
        self._conn.executemany(
            """INSERT INTO papers
               (search_id, name, author, year, abstract, doi,
                research_question, major_findings, suggestions, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    search_id,
                    p.name,
                    p.author,
                    p.year,
                    p.abstract,
                    p.doi,
                    p.research_question,
                    p.major_findings,
                    p.suggestions,
                    now,
                )
                for p in papers
            ],
        )
        self._conn.commit()
        logger.info("Saved %d papers for search %d", len(papers), search_id)
        return len(papers)

    def get_papers_for_search(self, search_id: int) -> list[dict]:
        rows = self._conn.execute(
            "SELECT * FROM papers WHERE search_id = ? ORDER BY id", (search_id,)
        ).fetchall()
        return [dict(r) for r in rows]

    def delete_search(self, search_id: int) -> None:
        """Delete a search and its papers (papers first, then the search)."""
        self._conn.execute("DELETE FROM papers WHERE search_id = ?", (search_id,))
        self._conn.commit()
        self._conn.execute("DELETE FROM searches WHERE id = ?", (search_id,))
        self._conn.commit()
        logger.info("Deleted search %d", search_id)

    # ── PDF Uploads ──────────────────────────────────────────

    def add_pdf_upload(
        self,
        filename: str,
        metadata: ExtractedPaperMetadata,
        markdown: str | None = None,
        stored_path: str | None = None,
    ) -> int:
        """Record an analyzed PDF. Text fields are sanitized. Returns the upload id."""
        clean = {f: sanitize_text(getattr(metadata, f)) for f in _PDF_TEXT_FIELDS}
        year = metadata.year or datetime.now().year

        cur = self._conn.execute(
            """INSERT INTO pdf_uploads
               (filename, stored_path, title, authors, year, doi, background,
                full_text, markdown_content, research_question, major_findings,
                suggestions, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                filename,
                stored_path,
                clean["title"],
                clean["authors"],
                year,
                clean["doi"],
                clean["background"],
                clean["full_text"],
                sanitize_text(markdown),
                clean["research_question"],
                clean["major_findings"],
                clean["suggestions"],
                _now(),
            ),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_pdf_upload(self, pdf_id: int) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM pdf_uploads WHERE id = ?", (pdf_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_pdf_uploads(self, pdf_ids: list[int]) -> list[dict]:
        """Fetch several uploads by id, in id order."""
        if not pdf_ids:
            return []
        placeholders = ", ".join("?" for _ in pdf_ids)
        rows = self._conn.execute(
            f"SELECT * FROM pdf_uploads WHERE id IN ({placeholders}) ORDER BY id",
            tuple(pdf_ids),
        ).fetchall()
        return [dict(r) for r in rows]

    def list_pdf_uploads(self) -> list[dict]:
        """All uploads, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM pdf_uploads ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [dict(r) for r in rows]

    def delete_pdf(self, pdf_id: int) -> None:
        """Delete an upload (batch links first, then the upload)."""
        self._conn.execute("DELETE FROM batch_pdfs WHERE pdf_id = ?", (pdf_id,))
        self._conn.commit()
        self._conn.execute("DELETE FROM pdf_uploads WHERE id = ?", (pdf_id,))
        self._conn.commit()
        logger.info("Deleted PDF %d", pdf_id)

    # ── Batches ──────────────────────────────────────────────

    def create_batch(self, name: str) -> int:
        """Create a named batch. Returns the batch id."""
        cur = self._conn.execute(
            "INSERT INTO pdf_batches (name, timestamp) VALUES (?, ?)", (name, _now())
        )
        self._conn.commit()
        return cur.lastrowid

    def get_batch(self, batch_id: int) -> dict | None:
        row = self._conn.execute(
            "SELECT * FROM pdf_batches WHERE id = ?", (batch_id,)
        ).fetchone()
        return dict(row) if row else None

    def list_batches(self) -> list[dict]:
        """All batches with their member counts, newest first."""
        rows = self._conn.execute(
            """SELECT b.*, COUNT(bp.id) AS pdf_count
               FROM pdf_batches b
               LEFT JOIN batch_pdfs bp ON bp.batch_id = b.id
               GROUP BY b.id
               ORDER BY b.timestamp DESC, b.id DESC"""
        ).fetchall()
        return [dict(r) for r in rows]

    def add_pdf_to_batch(self, batch_id: int, pdf_id: int) -> int:
        """Link an upload to a batch. Returns the link id."""
        cur = self._conn.execute(
            "INSERT INTO batch_pdfs (batch_id, pdf_id) VALUES (?, ?)",
            (batch_id, pdf_id),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_batch_pdf_ids(self, batch_id: int) -> list[int]:
        rows = self._conn.execute(
            "SELECT pdf_id FROM batch_pdfs WHERE batch_id = ? ORDER BY pdf_id",
            (batch_id,),
        ).fetchall()
        return [r["pdf_id"] for r in rows]

    def delete_batch(self, batch_id: int) -> None:
        """Delete a batch and every upload in it.

        Ordered deletes: links, then the batch, then the member uploads.
        """
        pdf_ids = self.get_batch_pdf_ids(batch_id)

        self._conn.execute("DELETE FROM batch_pdfs WHERE batch_id = ?", (batch_id,))
        self._conn.commit()
        self._conn.execute("DELETE FROM pdf_batches WHERE id = ?", (batch_id,))
        self._conn.commit()

        if pdf_ids:
            placeholders = ", ".join("?" for _ in pdf_ids)
            self._conn.execute(
                f"DELETE FROM pdf_uploads WHERE id IN ({placeholders})", tuple(pdf_ids)
            )
            self._conn.commit()
        logger.info("Deleted batch %d (%d PDFs)", batch_id, len(pdf_ids))

    # ── API Keys ─────────────────────────────────────────────

    def get_api_key(self, service: str) -> str | None:
        """Most recently created key for a service, or None."""
        row = self._conn.execute(
            """SELECT api_key FROM api_keys WHERE service = ?
               ORDER BY created_at DESC, id DESC LIMIT 1""",
            (service,),
        ).fetchone()
        return row["api_key"] if row else None

    def save_api_key(self, service: str, api_key: str) -> None:
        """Update the service's existing key row, or insert one."""
        now = _now()
        row = self._conn.execute(
            "SELECT id FROM api_keys WHERE service = ? LIMIT 1", (service,)
        ).fetchone()
        if row:
            self._conn.execute(
                "UPDATE api_keys SET api_key = ?, updated_at = ? WHERE id = ?",
                (api_key, now, row["id"]),
            )
        else:
            self._conn.execute(
                """INSERT INTO api_keys (service, api_key, created_at, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (service, api_key, now, now),
            )
        self._conn.commit()

    def has_api_key(self, service: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM api_keys WHERE service = ? LIMIT 1", (service,)
        ).fetchone()
        return row is not None

    # ── AI Models ────────────────────────────────────────────

    def list_ai_models(self) -> list[AIModelConfig]:
        """All models, default first, then newest first."""
        rows = self._conn.execute(
            """SELECT * FROM ai_models
               ORDER BY is_default DESC, created_at DESC, id DESC"""
        ).fetchall()
        return [AIModelConfig.model_validate(dict(r)) for r in rows]

    def get_ai_model(self, model_id: int) -> AIModelConfig | None:
        row = self._conn.execute(
            "SELECT * FROM ai_models WHERE id = ?", (model_id,)
        ).fetchone()
        return AIModelConfig.model_validate(dict(row)) if row else None

    def get_default_model(self) -> AIModelConfig | None:
        row = self._conn.execute(
            "SELECT * FROM ai_models WHERE is_default = 1"
        ).fetchone()
        return AIModelConfig.model_validate(dict(row)) if row else None

    def has_default_model(self) -> bool:
        count = self._conn.execute(
            "SELECT COUNT(*) FROM ai_models WHERE is_default = 1"
        ).fetchone()[0]
        return count > 0

    def add_ai_model(self, model: AIModelInput) -> AIModelConfig:
        """Register a model.

        It becomes the default when its name mentions "default" or when no
        default exists yet; the old default is cleared in the same transaction.
        """
        make_default = "default" in model.name.lower() or not self.has_default_model()
        now = _now()

        with self._conn:
            if make_default:
                self._conn.execute(
                    "UPDATE ai_models SET is_default = 0, updated_at = ? WHERE is_default = 1",
                    (now,),
                )
            cur = self._conn.execute(
                """INSERT INTO ai_models
                   (name, provider, api_key, base_url, model_name, is_default,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    model.name,
                    model.provider,
                    model.api_key,
                    model.base_url,
                    model.model_name,
                    int(make_default),
                    now,
                    now,
                ),
            )

        logger.info(
            "Added AI model '%s' (%s)%s",
            model.name,
            model.provider,
            " as default" if make_default else "",
        )
        return self.get_ai_model(cur.lastrowid)

    def update_ai_model(self, model_id: int, update: AIModelUpdate) -> AIModelConfig:
        """Apply a partial update to a model."""
        if self.get_ai_model(model_id) is None:
            raise ValueError(f"AI model {model_id} not found")

        fields = update.model_dump(exclude_unset=True)
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            self._conn.execute(
                f"UPDATE ai_models SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), _now(), model_id),
            )
            self._conn.commit()
        return self.get_ai_model(model_id)

    def delete_ai_model(self, model_id: int) -> bool:
        """Delete a model. Returns False if it did not exist."""
        cur = self._conn.execute("DELETE FROM ai_models WHERE id = ?", (model_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def clear_default_models(self) -> None:
        self._conn.execute(
            "UPDATE ai_models SET is_default = 0, updated_at = ? WHERE is_default = 1",
            (_now(),),
        )
        self._conn.commit()

    def set_default_model(self, model_id: int) -> None:
        """Make one model the default, clearing the rest in a single transaction."""
        if self.get_ai_model(model_id) is None:
            raise ValueError(f"AI model {model_id} not found")

        now = _now()
        with self._conn:
            self._conn.execute(
                "UPDATE ai_models SET is_default = 0, updated_at = ? WHERE is_default = 1",
                (now,),
            )
            self._conn.execute(
                "UPDATE ai_models SET is_default = 1, updated_at = ? WHERE id = ?",
                (now, model_id),
            )
        logger.info("AI model %d is now the default", model_id)

    # ── Library Stats ────────────────────────────────────────

    def get_library_stats(self) -> dict:
        """Row counts for every table."""
        stats = {}
        for table in (
            "searches",
            "papers",
            "pdf_uploads",
            "pdf_batches",
            "batch_pdfs",
            "ai_models",
        ):
            stats[table] = self._conn.execute(
                f"SELECT COUNT(*) FROM {table}"
            ).fetchone()[0]
        return stats

    # ── Cleanup ──────────────────────────────────────────────

    def close(self) -> None:
        self._conn.close()


# ── Helpers ──────────────────────────────────────────────────────────

_ESCAPED_UNICODE_RE = re.compile(r"\\u[0-9a-fA-F]{4}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b-\x0c\x0e-\x1f]")


def sanitize_text(text: str | int | None) -> str | None:
    """Strip literal \\uXXXX escapes and control characters, NFKD-normalize, trim."""
    if text is None:
        return None
    cleaned = _ESCAPED_UNICODE_RE.sub("", str(text))
    cleaned = _CONTROL_CHARS_RE.sub("", cleaned)
    return unicodedata.normalize("NFKD", cleaned).strip()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
