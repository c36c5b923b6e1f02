"""Tests for the SQLite research library."""

import sqlite3

import pytest

from scholar.agents.models import AIModelInput, AIModelUpdate, ExtractedPaperMetadata
from scholar.core.database import ResearchDatabase, sanitize_text
from scholar.search.models import PaperData


@pytest.fixture()
def db(tmp_path):
    """Create a fresh ResearchDatabase in a temp directory."""
    rdb = ResearchDatabase("test_library", data_root=tmp_path)
    yield rdb
    rdb.close()


def _model(**kw):
    defaults = dict(
        name="Qwen", provider="siliconflow", api_key="sk-test", model_name="Qwen/Qwen2.5-7B"
    )
    defaults.update(kw)
    return AIModelInput(**defaults)


def _paper(**kw):
    defaults = dict(name="Study A", author="Smith A", year=2023, doi="10.1/a")
    defaults.update(kw)
    return PaperData(**defaults)


def _defaults(db):
    return [m for m in db.list_ai_models() if m.is_default]


# ── Table Creation ───────────────────────────────────────────────────


def test_tables_exist(db):
    tables = {
        r[0]
        for r in db._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    expected = {
        "searches",
        "papers",
        "pdf_uploads",
        "pdf_batches",
        "batch_pdfs",
        "api_keys",
        "ai_models",
    }
    assert expected.issubset(tables)


def test_directories_created(db, tmp_path):
    base = tmp_path / "test_library"
    assert (base / "pdfs").is_dir()
    assert (base / "exports").is_dir()


def test_wal_mode(db):
    mode = db._conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode == "wal"


# ── Searches & Papers ────────────────────────────────────────────────


def test_add_search_and_papers(db):
    sid = db.add_search("robotic suturing")
    added = db.add_papers([_paper(name=f"Study {i}") for i in range(3)], sid)
    assert added == 3

    papers = db.get_papers_for_search(sid)
    assert [p["name"] for p in papers] == ["Study 0", "Study 1", "Study 2"]
    assert papers[0]["search_id"] == sid


def test_add_papers_empty(db):
    sid = db.add_search("nothing")
    assert db.add_papers([], sid) == 0


def test_list_searches_newest_first(db):
    first = db.add_search("first")
    second = db.add_search("second")
    ids = [s["id"] for s in db.list_searches()]
    assert ids.index(second) < ids.index(first)


def test_delete_search_removes_papers(db):
    sid = db.add_search("to delete")
    db.add_papers([_paper()], sid)
    db.delete_search(sid)

    assert db.get_search(sid) is None
    assert db.get_papers_for_search(sid) == []


def test_search_cascade_on_direct_delete(db):
    sid = db.add_search("cascade")
    db.add_papers([_paper()], sid)
    db._conn.execute("DELETE FROM searches WHERE id = ?", (sid,))
    db._conn.commit()
    assert db.get_papers_for_search(sid) == []


# ── PDF Uploads & Batches ────────────────────────────────────────────


def test_add_pdf_upload_sanitizes_text(db):
    meta = ExtractedPaperMetadata(
        title="  A\x07 Title\\u00e9 ",
        authors="Lee C",
        year=2021,
        full_text="body",
    )
    pid = db.add_pdf_upload("paper.pdf", meta, markdown="# A Title\n")
    row = db.get_pdf_upload(pid)
    assert row["title"] == "A Title"
    assert row["authors"] == "Lee C"
    assert row["year"] == 2021
    assert row["markdown_content"] == "# A Title"


def test_add_pdf_upload_defaults_year(db):
    from datetime import datetime

    pid = db.add_pdf_upload("x.pdf", ExtractedPaperMetadata())
    assert db.get_pdf_upload(pid)["year"] == datetime.now().year


def test_batch_membership(db):
    bid = db.create_batch("Week 1")
    p1 = db.add_pdf_upload("a.pdf", ExtractedPaperMetadata(title="A"))
    p2 = db.add_pdf_upload("b.pdf", ExtractedPaperMetadata(title="B"))
    db.add_pdf_to_batch(bid, p1)
    db.add_pdf_to_batch(bid, p2)

    assert db.get_batch_pdf_ids(bid) == [p1, p2]
    batches = db.list_batches()
    assert batches[0]["pdf_count"] == 2


def test_batch_membership_unique(db):
    bid = db.create_batch("Dup")
    pid = db.add_pdf_upload("a.pdf", ExtractedPaperMetadata())
    db.add_pdf_to_batch(bid, pid)
    with pytest.raises(sqlite3.IntegrityError):
        db.add_pdf_to_batch(bid, pid)


def test_delete_pdf_removes_links(db):
    bid = db.create_batch("B")
    pid = db.add_pdf_upload("a.pdf", ExtractedPaperMetadata())
    db.add_pdf_to_batch(bid, pid)

    db.delete_pdf(pid)
    assert db.get_pdf_upload(pid) is None
    assert db.get_batch_pdf_ids(bid) == []
    assert db.get_batch(bid) is not None


def test_delete_batch_removes_members(db):
    bid = db.create_batch("B")
    keep = db.add_pdf_upload("keep.pdf", ExtractedPaperMetadata())
    members = [db.add_pdf_upload(f"{i}.pdf", ExtractedPaperMetadata()) for i in range(2)]
    for pid in members:
        db.add_pdf_to_batch(bid, pid)

    db.delete_batch(bid)
    assert db.get_batch(bid) is None
    assert db.get_pdf_uploads(members) == []
    assert db.get_pdf_upload(keep) is not None


def test_get_pdf_uploads_empty(db):
    assert db.get_pdf_uploads([]) == []


# ── API Keys ─────────────────────────────────────────────────────────


def test_api_key_insert_then_update(db):
    assert not db.has_api_key("firecrawl")
    assert db.get_api_key("firecrawl") is None

    db.save_api_key("firecrawl", "fc-one")
    db.save_api_key("firecrawl", "fc-two")

    assert db.has_api_key("firecrawl")
    assert db.get_api_key("firecrawl") == "fc-two"
    count = db._conn.execute("SELECT COUNT(*) FROM api_keys").fetchone()[0]
    assert count == 1


# ── AI Models ────────────────────────────────────────────────────────


def test_first_model_becomes_default(db):
    m = db.add_ai_model(_model())
    assert m.is_default
    assert db.get_default_model().id == m.id


def test_second_model_not_default(db):
    first = db.add_ai_model(_model(name="First"))
    second = db.add_ai_model(_model(name="Second"))
    assert not second.is_default
    assert db.get_default_model().id == first.id


def test_default_in_name_takes_over(db):
    db.add_ai_model(_model(name="First"))
    takeover = db.add_ai_model(_model(name="My Default Model"))
    assert takeover.is_default
    assert len(_defaults(db)) == 1


def test_set_default_keeps_single_default(db):
    ids = [db.add_ai_model(_model(name=f"M{i}")).id for i in range(4)]
    for mid in ids + ids[::-1]:
        db.set_default_model(mid)
        defaults = _defaults(db)
        assert len(defaults) == 1
        assert defaults[0].id == mid


def test_set_default_unknown_model(db):
    db.add_ai_model(_model())
    with pytest.raises(ValueError, match="not found"):
        db.set_default_model(999)
    assert len(_defaults(db)) == 1


def test_unique_default_index_rejects_second_default(db):
    db.add_ai_model(_model(name="A"))
    b = db.add_ai_model(_model(name="B"))
    with pytest.raises(sqlite3.IntegrityError):
        db._conn.execute("UPDATE ai_models SET is_default = 1 WHERE id = ?", (b.id,))
    db._conn.rollback()


def test_list_models_default_first(db):
    db.add_ai_model(_model(name="A"))
    b = db.add_ai_model(_model(name="B"))
    db.set_default_model(b.id)
    assert db.list_ai_models()[0].id == b.id


def test_update_model(db):
    m = db.add_ai_model(_model())
    updated = db.update_ai_model(m.id, AIModelUpdate(model_name="deepseek-ai/DeepSeek-V3"))
    assert updated.model_name == "deepseek-ai/DeepSeek-V3"
    assert updated.name == m.name
    assert updated.updated_at >= m.updated_at


def test_update_unknown_model(db):
    with pytest.raises(ValueError, match="not found"):
        db.update_ai_model(42, AIModelUpdate(name="x"))


def test_delete_model(db):
    m = db.add_ai_model(_model())
    assert db.delete_ai_model(m.id)
    assert not db.delete_ai_model(m.id)
    assert db.get_ai_model(m.id) is None


def test_clear_default_models(db):
    db.add_ai_model(_model())
    db.clear_default_models()
    assert not db.has_default_model()
    assert db.get_default_model() is None


# ── Stats & Helpers ──────────────────────────────────────────────────


def test_library_stats(db):
    sid = db.add_search("q")
    db.add_papers([_paper(), _paper(name="B")], sid)
    db.add_ai_model(_model())
    stats = db.get_library_stats()
    assert stats["searches"] == 1
    assert stats["papers"] == 2
    assert stats["ai_models"] == 1
    assert stats["pdf_uploads"] == 0


def test_sanitize_text():
    assert sanitize_text(None) is None
    assert sanitize_text(2020) == "2020"
    assert sanitize_text("  a\x00b\x1fc  ") == "abc"
    assert sanitize_text("keep\nnewlines\ttabs") == "keep\nnewlines\ttabs"
