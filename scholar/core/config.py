"""Settings: YAML loader and Pydantic model."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_DISCOVERY_SITES = [
    "https://scholar.google.com/*",
    "https://researchgate.net/*",
]


class Settings(BaseModel):
    """Runtime configuration for a scholar-desk library."""

    data_root: Path = Field(default=Path("data"), description="Root for all libraries")
    library: str = Field(default="default", description="Library name under data_root")

    firecrawl_api_key: Optional[str] = None
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    discovery_sites: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DISCOVERY_SITES)
    )

    request_timeout: Optional[float] = Field(
        default=None, description="HTTP timeout in seconds; None waits indefinitely"
    )

    max_file_size: int = Field(default=100 * 1024 * 1024, gt=0)
    max_files: int = Field(default=100)

    @field_validator("max_files")
    @classmethod
    def at_least_one_file(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_files must be >= 1 (got {v})")
        return v

    @field_validator("discovery_sites")
    @classmethod
    def non_empty_sites(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("discovery_sites must list at least one site pattern")
        return v


def load_settings(path: str | Path | None = None) -> Settings:
    """Load Settings from a YAML file. No path means all defaults."""
    if path is None:
        return Settings()
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return Settings.model_validate(raw)
