"""
Collaborator interfaces consumed by the job orchestration service.

The service only orchestrates calls to these; fetching, parsing, persisting,
staleness inspection and purging live behind them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import CleanupResult, HealthReport, ScrapeRequest, ScrapeResult


class ExternalScraper(ABC):
    """Scrapes, parses and persists one resolved source request."""

    @abstractmethod
    async def run_external_scrape(self, request: ScrapeRequest) -> ScrapeResult:
        """Run one request. Raises on fatal failure.

        Per-request retries (``request.max_retries``) are the implementation's
        responsibility.
        """
        pass


class HealthInspector(ABC):
    """Reports how fresh the externally sourced records are."""

    @abstractmethod
    async def get_scraper_health(self) -> HealthReport:
        pass


class ExpiredRecordPurger(ABC):
    """Counts or removes records whose age exceeds their source's TTL."""

    @abstractmethod
    async def cleanup_expired_records(self, dry_run: bool) -> CleanupResult:
        """With ``dry_run`` only count the qualifying records."""
        pass
