"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from scholar.core.config import DEFAULT_DISCOVERY_SITES, Settings, load_settings


def test_defaults():
    settings = load_settings()
    assert settings.library == "default"
    assert settings.data_root == Path("data")
    assert settings.discovery_sites == DEFAULT_DISCOVERY_SITES
    assert settings.request_timeout is None
    assert settings.max_files == 100
    assert settings.max_file_size == 100 * 1024 * 1024


def test_load_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "library: thesis\n"
        f"data_root: {tmp_path}\n"
        "firecrawl_api_key: fc-123\n"
        "request_timeout: 30\n"
        "discovery_sites:\n"
        "  - https://arxiv.org/*\n"
    )
    settings = load_settings(path)
    assert settings.library == "thesis"
    assert settings.data_root == tmp_path
    assert settings.firecrawl_api_key == "fc-123"
    assert settings.request_timeout == 30
    assert settings.discovery_sites == ["https://arxiv.org/*"]


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_settings(path) == Settings()


def test_sample_config_loads():
    sample = Path(__file__).resolve().parent.parent / "config" / "assistant.yaml"
    settings = load_settings(sample)
    assert settings.discovery_sites


def test_default_sites_not_shared():
    a, b = Settings(), Settings()
    a.discovery_sites.append("https://x/*")
    assert b.discovery_sites == DEFAULT_DISCOVERY_SITES


@pytest.mark.parametrize(
    "field,value",
    [
        ("max_files", 0),
        ("discovery_sites", []),
        ("max_file_size", -1),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})
