"""Tests for the two-call metadata extraction pipeline."""

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
from fpdf import FPDF

from scholar.agents.metadata import (
    CONTENT_CHUNK,
    METADATA_CHUNK,
    analyze_with_ai,
    build_content_prompt,
    build_metadata_prompt,
    extract_metadata,
    fallback_metadata,
    parse_json_object,
    process_pdf,
)
from scholar.core.errors import MetadataParseFailure, NoTextContent, PipelineFailure

METADATA_JSON = json.dumps(
    {"title": "Robotic Suturing", "authors": "Smith A, Lee B", "doi": "10.1/rs", "year": "2022"}
)
CONTENT_JSON = json.dumps(
    {
        "background": "Suturing is hard.",
        "research_question": "Can robots suture?",
        "major_findings": "Yes.",
        "suggestions": "More trials.",
    }
)


def _dispatcher(*responses):
    """Fake dispatcher returning (or raising) each response in turn."""
    dispatcher = MagicMock()
    dispatcher.generate_completion.side_effect = list(responses)
    return dispatcher


def _sent_prompts(dispatcher) -> list[str]:
    return [c.args[0] for c in dispatcher.generate_completion.call_args_list]


@pytest.fixture()
def digital_pdf(tmp_path) -> Path:
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", size=12)
    pdf.multi_cell(w=0, text="Autonomous Robotic Suturing")
    path = tmp_path / "suturing.pdf"
    pdf.output(str(path))
    return path


# ── Prompts ──────────────────────────────────────────────────────────


def test_short_markdown_sent_whole():
    markdown = "# Short Paper\n\nbody line\n"
    dispatcher = _dispatcher(METADATA_JSON, CONTENT_JSON)
    extract_metadata(markdown, dispatcher)

    first, second = _sent_prompts(dispatcher)
    assert first.endswith("Text:\n" + markdown)
    assert second.endswith("Text:\n" + markdown)


def test_long_markdown_truncated_per_call():
    markdown = "x" * (CONTENT_CHUNK + 500)
    assert build_metadata_prompt(markdown).endswith("Text:\n" + "x" * METADATA_CHUNK)
    assert build_content_prompt(markdown).endswith("Text:\n" + "x" * CONTENT_CHUNK)


def test_prompts_name_their_keys():
    meta = build_metadata_prompt("t")
    content = build_content_prompt("t")
    for key in ("title", "authors", "doi", "year"):
        assert f'"{key}"' in meta
    for key in ("background", "research_question", "major_findings", "suggestions"):
        assert f'"{key}"' in content


# ── JSON Parsing ─────────────────────────────────────────────────────


def test_parse_json_object_with_surrounding_prose():
    assert parse_json_object('Sure! {"title": "X"} Hope that helps.') == {"title": "X"}


def test_parse_json_object_fenced():
    assert parse_json_object('```json\n{"year": 2020}\n```') == {"year": 2020}


@pytest.mark.parametrize("content", ["no braces here", "{not json}", "", None])
def test_parse_json_object_failures(content):
    with pytest.raises(MetadataParseFailure):
        parse_json_object(content)


# ── Merge ────────────────────────────────────────────────────────────


def test_extract_metadata_merges_both_calls():
    result = extract_metadata("# Paper\n", _dispatcher(METADATA_JSON, CONTENT_JSON))
    assert result.title == "Robotic Suturing"
    assert result.authors == "Smith A, Lee B"
    assert result.doi == "10.1/rs"
    assert result.year == 2022
    assert result.background == "Suturing is hard."
    assert result.research_question == "Can robots suture?"
    assert result.major_findings == "Yes."
    assert result.suggestions == "More trials."
    assert result.full_text == "# Paper\n"


def test_invalid_metadata_json_is_not_fatal():
    markdown = "# Paper\n"
    result = extract_metadata(markdown, _dispatcher("I could not find anything", CONTENT_JSON))
    assert result.full_text == markdown
    assert result.title is None
    assert result.background == "Suturing is hard."


def test_unknown_keys_dropped_and_lists_joined():
    meta = json.dumps({"title": "T", "authors": ["A", "B"], "venue": "Nature"})
    result = extract_metadata("md", _dispatcher(meta, "{}"))
    assert result.authors == "A, B"
    assert not hasattr(result, "venue")


@pytest.mark.parametrize("year", ["20xx", "99", 12345, "circa 2020"])
def test_bad_year_dropped(year):
    meta = json.dumps({"title": "T", "year": year})
    result = extract_metadata("md", _dispatcher(meta, "{}"))
    assert result.year is None


def test_completion_error_raises_pipeline_failure():
    dispatcher = _dispatcher(METADATA_JSON, requests.ConnectionError("down"))
    with pytest.raises(PipelineFailure):
        extract_metadata("md", dispatcher)


# ── Fallback ─────────────────────────────────────────────────────────


def test_network_error_in_content_call_falls_back():
    markdown = "# Paper\n\nbody\n"
    dispatcher = _dispatcher(METADATA_JSON, requests.ConnectionError("network down"))
    result = analyze_with_ai(markdown, dispatcher)

    assert result.title == ""
    assert result.authors == "Unknown"
    assert result.year == datetime.now().year
    assert result.full_text == markdown
    assert result.doi is None
    assert result == fallback_metadata(markdown)


def test_fallback_is_deterministic():
    assert fallback_metadata("m") == fallback_metadata("m")


# ── Whole PDF ────────────────────────────────────────────────────────


def test_process_pdf_reports_progress(digital_pdf):
    steps = []
    metadata, markdown = process_pdf(
        digital_pdf.read_bytes(),
        digital_pdf.name,
        _dispatcher(METADATA_JSON, CONTENT_JSON),
        on_progress=steps.append,
    )
    assert steps == [20, 40, 60, 80, 100]
    assert markdown.startswith("# Autonomous Robotic Suturing")
    assert metadata.title == "Robotic Suturing"
    assert metadata.year == 2022
    assert metadata.full_text == markdown


def test_process_pdf_fills_missing_fields(digital_pdf):
    metadata, _ = process_pdf(
        digital_pdf.read_bytes(), "My Paper.PDF", _dispatcher("{}", "{}")
    )
    assert metadata.title == "My Paper"
    assert metadata.authors == "Unknown"
    assert metadata.year == datetime.now().year


def test_process_pdf_ai_failure_still_returns(digital_pdf):
    metadata, markdown = process_pdf(
        digital_pdf.read_bytes(),
        "suturing.pdf",
        _dispatcher(RuntimeError("provider exploded")),
    )
    assert metadata.title == "suturing"
    assert metadata.full_text == markdown


def test_process_pdf_blank_raises_before_ai(tmp_path):
    pdf = FPDF()
    pdf.add_page()
    path = tmp_path / "blank.pdf"
    pdf.output(str(path))

    dispatcher = _dispatcher()
    with pytest.raises(NoTextContent):
        process_pdf(path.read_bytes(), "blank.pdf", dispatcher)
    dispatcher.generate_completion.assert_not_called()
