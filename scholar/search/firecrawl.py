"""Paper discovery through the Firecrawl extract API."""

import logging
import sqlite3
import threading
from typing import Any, Callable, Optional

from firecrawl import FirecrawlApp
from pydantic import ValidationError

from scholar.core.config import Settings
from scholar.core.database import ResearchDatabase
from scholar.core.errors import DiscoveryError
from scholar.search.models import ActivityItem, CrawlProgress, CrawlResult, PaperData

logger = logging.getLogger(__name__)

SERVICE = "firecrawl"

PAPER_SCHEMA = {
    "type": "object",
    "properties": {
        "papers": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "author": {"type": "string"},
                    "year": {"type": "number"},
                    "abstract": {"type": "string"},
                    "doi": {"type": "string"},
                    "research_question": {"type": "string"},
                    "major_findings": {"type": "string"},
                    "suggestions": {"type": "string"},
                },
                "required": ["name", "author", "year"],
            },
        }
    },
}

_TICK_SECONDS = 0.2
_TICK_STEP = 2
_TICK_STOP = 95


def build_search_prompt(query: str) -> str:
    return (
        "Search for papers related to topic given below on different scholarly "
        "databases. Extract the paper's name, author, year, abstract, and DOI. "
        "Ensure that the name, author, year, and DOI are included for each paper.\n\n"
        f"topic is: {query}"
    )


# ── Extract Client ───────────────────────────────────────────────────


class FirecrawlClient:
    """Wraps firecrawl-py's FirecrawlApp; the SDK submits and polls the extract job."""

    def __init__(self, api_key: str, base_url: str = "https://api.firecrawl.dev"):
        self.app = FirecrawlApp(api_key=api_key, api_url=base_url.rstrip("/"))

    def extract(self, urls: list[str], prompt: str, schema: dict) -> dict:
        """Run an extract job and return its data object."""
        response = self.app.extract(urls, prompt=prompt, schema=schema)
        return _response_data(response)


def _response_data(response: Any) -> dict:
    """Data object of an extract response; raise DiscoveryError on a failure envelope."""
    if isinstance(response, dict):
        success = response.get("success", True)
        data, error = response.get("data"), response.get("error")
    else:
        success = getattr(response, "success", True)
        data, error = getattr(response, "data", None), getattr(response, "error", None)

    if success is False:
        raise DiscoveryError(f"Firecrawl request failed: {error or 'unknown error'}")
    if not isinstance(data, dict):
        raise DiscoveryError(
            f"Firecrawl returned {type(data).__name__} where an object was expected"
        )
    return data


# ── Progress Ticker ──────────────────────────────────────────────────


class ProgressTicker:
    """Simulated progress while the extract call blocks; stops at _TICK_STOP."""

    def __init__(self, progress: CrawlProgress, on_progress: Callable[[CrawlProgress], None]):
        self.progress = progress
        self.on_progress = on_progress
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join()

    def _run(self) -> None:
        while not self._stop.wait(_TICK_SECONDS):
            p = self.progress
            p.completed += _TICK_STEP
            p.percentage = min(99, p.completed * 100 // p.total)
            self.on_progress(p.model_copy())
            if p.completed >= _TICK_STOP:
                return


# ── Search Service ───────────────────────────────────────────────────


class PaperSearchService:
    """Search → save query → extract → save papers, with progress and activity."""

    def __init__(
        self,
        db: ResearchDatabase,
        settings: Settings | None = None,
        client_factory: Callable[..., Any] = FirecrawlClient,
    ):
        self.db = db
        self.settings = settings or Settings()
        self.client_factory = client_factory
        self._cached_key: str | None = None
        self._client = None
        self._ticker: ProgressTicker | None = None

    # ── API key ──────────────────────────────────────────────

    def get_api_key(self) -> str:
        """Cached key, else newest stored key, else the configured default."""
        if self._cached_key:
            return self._cached_key

        key = self.db.get_api_key(SERVICE) or self.settings.firecrawl_api_key
        if not key:
            raise DiscoveryError("No Firecrawl API key configured")
        self._cached_key = key
        return key

    def save_api_key(self, api_key: str) -> None:
        self.db.save_api_key(SERVICE, api_key)
        self.invalidate()
        self._cached_key = api_key
        logger.info("Firecrawl API key saved")

    def has_api_key(self) -> bool:
        return self.db.has_api_key(SERVICE)

    def invalidate(self) -> None:
        """Forget the cached key and client."""
        self._cached_key = None
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = self.client_factory(
                api_key=self.get_api_key(),
                base_url=self.settings.firecrawl_base_url,
            )
        return self._client

    # ── Search ───────────────────────────────────────────────

    def process_query(
        self,
        query: str,
        on_progress: Optional[Callable[[CrawlProgress], None]] = None,
        on_activity: Optional[Callable[[list[ActivityItem]], None]] = None,
    ) -> CrawlResult:
        """Run one search. Errors are reported in the result, not raised."""
        self.cancel_current_search()

        report_progress = on_progress or (lambda _p: None)
        activities: list[ActivityItem] = []
        sources: list[str] = []

        def log_activity(kind: str, message: str, details: str | None = None) -> None:
            activities.append(ActivityItem(type=kind, message=message, details=details))
            if on_activity:
                on_activity(list(activities))

        progress = CrawlProgress(status="Research in progress...")
        report_progress(progress.model_copy())

        try:
            search_id = self._save_search(query)
            if search_id is None:
                log_activity("info", "Failed to save search to database")

            client = self._get_client()
            log_activity("analyzing", f'Starting research for: "{query}"')
            log_activity("analyzing", "Searching scholarly databases...")

            self._ticker = ProgressTicker(progress, report_progress)
            self._ticker.start()
            try:
                data = client.extract(
                    self.settings.discovery_sites, build_search_prompt(query), PAPER_SCHEMA
                )
            finally:
                self.cancel_current_search()

            sources.extend(site.rstrip("/*") for site in self.settings.discovery_sites)
            log_activity("success", "Research completed successfully")

            papers = _parse_papers(data)
            if papers and search_id is not None:
                self.db.add_papers(papers, search_id)
                log_activity(
                    "success",
                    f"Found {len(papers)} relevant papers",
                    f'Extracted information about {len(papers)} papers related to "{query}"',
                )
            else:
                log_activity("info", "No papers found matching the criteria")

            progress.completed = progress.total
            progress.percentage = 100
            progress.status = "Research completed"
            report_progress(progress.model_copy())

            found = (
                f"Found {len(papers)} papers related to the topic."
                if papers
                else "No specific papers were found."
            )
            return CrawlResult(
                search_id=search_id,
                sources=sources,
                activities=activities,
                summary=f'Completed research on "{query}". {found}',
                papers=papers,
            )

        except Exception as exc:
            logger.error("Search for '%s' failed: %s", query, exc)
            log_activity("info", "An error occurred during research", str(exc))
            progress.status = "Research failed"
            progress.percentage = 100
            report_progress(progress.model_copy())
            return CrawlResult(
                sources=sources,
                activities=activities,
                summary=f'Research on "{query}" encountered an error.',
                success=False,
            )

    def cancel_current_search(self) -> None:
        """Stop the progress ticker. An in-flight extract call keeps running."""
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def _save_search(self, query: str) -> int | None:
        try:
            search_id = self.db.add_search(query)
        except sqlite3.Error as exc:
            logger.error("Error saving search query: %s", exc)
            return None
        logger.info("Search saved with id %d", search_id)
        return search_id


def _parse_papers(data: Any) -> list[PaperData]:
    """Validate the extract payload's papers, skipping malformed entries.

    Raises DiscoveryError when the payload is not an object or its papers
    are not a list.
    """
    if data is None:
        return []
    if not isinstance(data, dict):
        raise DiscoveryError(f"Extract payload is a {type(data).__name__}, not an object")

    raw_papers = data.get("papers") or []
    if not isinstance(raw_papers, list):
        raise DiscoveryError('Extract payload "papers" is not a list')

    papers: list[PaperData] = []
    for raw in raw_papers:
        try:
            papers.append(PaperData.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping malformed paper record: %s", exc)
    return papers
