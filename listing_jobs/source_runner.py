"""
Drives one configured source through single- or multi-page scraping.

Fetching, parsing and persisting are delegated to an ExternalScraper; this
module owns pagination, the inter-page delay, per-request timeouts and the
scrape outcome recorded for every attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import ScrapeTimeoutError
from .infra.clock import Clock
from .interfaces import ExternalScraper
from .metrics import MetricsRecorder
from .models import ScrapeRequest, ScrapeResult, SourceConfig

logger = logging.getLogger(__name__)

# Fixed pause between consecutive pages of one source, to respect target-site rate limits.
PAGE_DELAY_SECONDS = 1.0
PAGE_PLACEHOLDER = "{page}"


def resolve_endpoint(template: str, page: int, paginated: bool) -> str:
    """Substitute the page into an endpoint template.

    A ``{page}`` placeholder is always substituted. Without one, paginated
    sources get a ``page`` query parameter and single-page sources are left
    untouched.
    """
    if PAGE_PLACEHOLDER in template:
        return template.replace(PAGE_PLACEHOLDER, str(page))
    if not paginated:
        return template

    parts = urlsplit(template)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "page"]
    query.append(("page", str(page)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def aggregate_results(results: Iterable[ScrapeResult]) -> ScrapeResult:
    """Component-wise sum of counts; error details concatenated in page order."""
    total = ScrapeResult()
    for r in results:
        total.created += r.created
        total.updated += r.updated
        total.skipped += r.skipped
        total.errors += r.errors
        total.total_processed += r.total_processed
        total.duration += r.duration
        total.error_details.extend(r.error_details)
    return total


class SourceScrapeRunner:
    """Scrapes one source per call and records a ScrapeOutcome for it."""

    def __init__(
        self,
        scraper: ExternalScraper,
        metrics: MetricsRecorder,
        clock: Optional[Clock] = None,
        page_delay: float = PAGE_DELAY_SECONDS,
    ):
        self._scraper = scraper
        self._metrics = metrics
        self._clock = clock or Clock()
        self._page_delay = page_delay

    async def scrape(self, source: SourceConfig) -> Optional[ScrapeResult]:
        """Scrape every page of ``source``.

        Returns the aggregated result, or None for a disabled source (which is
        neither called nor recorded). Any failure is recorded and re-raised.
        """
        log = logger.getChild(source.name)
        if not source.enabled:
            log.info("Source disabled, skipping")
            return None

        started = self._clock.monotonic()
        try:
            log.info(f"Starting scrape from {source.endpoint}")

            if source.page_count > 1:
                result = await self._scrape_paginated(source, log)
            else:
                result = await self._scrape_single(source, log)

            duration_ms = self._clock.elapsed_ms(started)
            self._metrics.record_scrape_success(source.name, duration_ms)
            log.info(f"Scrape completed in {duration_ms}ms")
            return result

        except Exception as e:
            duration_ms = self._clock.elapsed_ms(started)
            self._metrics.record_scrape_error(source.name, e, duration_ms)
            log.error(f"Scrape failed after {duration_ms}ms: {e}")
            raise

    async def _scrape_paginated(self, source: SourceConfig, log: logging.Logger) -> ScrapeResult:
        results: List[ScrapeResult] = []

        for page in range(1, source.page_count + 1):
            log.info(f"Scraping page {page}/{source.page_count}")
            results.append(await self._request(source, page, paginated=True))

            if page < source.page_count:
                await self._clock.sleep(self._page_delay)

        total = aggregate_results(results)
        log.info(
            "Completed all pages: pages=%d created=%d updated=%d errors=%d duration=%dms",
            source.page_count,
            total.created,
            total.updated,
            total.errors,
            total.duration,
        )
        return total

    async def _scrape_single(self, source: SourceConfig, log: logging.Logger) -> ScrapeResult:
        result = await self._request(source, 1, paginated=False)
        log.info(
            "Completed single page scrape: created=%d updated=%d errors=%d duration=%dms",
            result.created,
            result.updated,
            result.errors,
            result.duration,
        )
        return result

    async def _request(self, source: SourceConfig, page: int, paginated: bool) -> ScrapeResult:
        """One external call, bounded by the source timeout."""
        request = ScrapeRequest(
            source=source.name,
            endpoint=resolve_endpoint(source.endpoint, page, paginated),
            page=page,
            timeout_ms=source.timeout_ms,
            max_retries=source.max_retries,
            batch_size=source.batch_size,
            ttl_days=source.ttl_days,
            api_key=source.api_key,
        )

        task = asyncio.ensure_future(self._scraper.run_external_scrape(request))
        try:
            done, _ = await asyncio.wait({task}, timeout=source.timeout_ms / 1000)
        finally:
            if not task.done():
                task.cancel()

        if task not in done:
            raise ScrapeTimeoutError(source.name, source.timeout_ms, page)

        result = task.result()
        if isinstance(result, dict):
            result = ScrapeResult.model_validate(result)
        return result
