"""
HTTP implementations of the collaborator interfaces.

The listing backend exposes its scraper routines under one base URL:

    POST {base}/run       body: source, endpoint, timeout, maxRetries, batchSize, ttlDays
    GET  {base}/health
    POST {base}/cleanup   body: dryRun

Every answer is wrapped as ``{"success": bool, "data": ...}``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .errors import CollaboratorError
from .infra.clock import Clock
from .infra.http import HttpClient
from .interfaces import ExpiredRecordPurger, ExternalScraper, HealthInspector
from .models import CleanupResult, HealthReport, ScrapeRequest, ScrapeResult

logger = logging.getLogger(__name__)

FATAL_SCRAPE_PREFIX = "Scrape failed:"


def unwrap(payload: Any, what: str) -> Any:
    """Return ``data`` from a ``{success, data}`` envelope; raise if unsuccessful."""
    if not isinstance(payload, dict):
        raise CollaboratorError(f"{what}: expected a JSON object, got {type(payload).__name__}")
    if "success" not in payload:
        return payload
    if not payload.get("success"):
        raise CollaboratorError(f"{what}: {payload.get('error') or 'request was not successful'}")
    return payload.get("data")


class _HttpCollaborator:
    def __init__(self, http: HttpClient, base_url: str):
        self._http = http
        self._base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"


class HttpExternalScraper(_HttpCollaborator, ExternalScraper):
    async def run_external_scrape(self, request: ScrapeRequest) -> ScrapeResult:
        body: Dict[str, Any] = {
            "source": request.source,
            "endpoint": request.endpoint,
            "timeout": request.timeout_ms,
            "maxRetries": request.max_retries,
            "batchSize": request.batch_size,
            "ttlDays": request.ttl_days,
        }
        if request.api_key:
            body["apiKey"] = request.api_key

        # The source timeout bounds the whole call; each attempt gets an equal share of it.
        attempt_timeout = request.timeout_ms / 1000 / max(1, request.max_retries)

        logger.debug(f"Requesting scrape of {request.source} page {request.page}: {request.endpoint}")
        payload = await self._http.post_json(
            self._url("run"),
            body,
            max_retries=request.max_retries,
            timeout=attempt_timeout,
        )

        try:
            result = ScrapeResult.model_validate(unwrap(payload, "scrape"))
        except ValidationError as e:
            raise CollaboratorError(f"scrape: malformed result: {e}") from e

        # The backend reports a fatal fetch failure as an empty result with one error detail.
        fatal = [d.error for d in result.error_details if d.error.startswith(FATAL_SCRAPE_PREFIX)]
        if fatal and result.total_processed == 0:
            raise CollaboratorError(fatal[0][len(FATAL_SCRAPE_PREFIX):].strip() or fatal[0])
        return result


class HttpHealthInspector(_HttpCollaborator, HealthInspector):
    def __init__(self, http: HttpClient, base_url: str, clock: Optional[Clock] = None):
        super().__init__(http, base_url)
        self._clock = clock or Clock()

    async def get_scraper_health(self) -> HealthReport:
        data = unwrap(await self._http.get_json(self._url("health")), "health")
        if not isinstance(data, dict):
            raise CollaboratorError("health: expected a JSON object")

        details = data.get("details")
        if not isinstance(details, dict):
            try:
                return HealthReport.model_validate(data)
            except ValidationError as e:
                raise CollaboratorError(f"health: malformed report: {e}") from e

        oldest_age = None
        oldest = details.get("oldestExternalProperty")
        if oldest:
            oldest_at = datetime.fromisoformat(str(oldest).replace("Z", "+00:00"))
            if oldest_at.tzinfo is None:
                oldest_at = oldest_at.replace(tzinfo=timezone.utc)
            oldest_age = self._clock.now() - oldest_at

        return HealthReport(
            status=data.get("status"),
            external_record_count=int(details.get("externalPropertyCount") or 0),
            oldest_record_age=oldest_age,
            recent_error_count=int(details.get("lastScrapeErrors") or 0),
        )


class HttpExpiredRecordPurger(_HttpCollaborator, ExpiredRecordPurger):
    async def cleanup_expired_records(self, dry_run: bool) -> CleanupResult:
        # destructive call is sent at most once
        payload = await self._http.post_json(
            self._url("cleanup"),
            {"dryRun": dry_run},
            max_retries=None if dry_run else 1,
        )
        try:
            return CleanupResult.model_validate(unwrap(payload, "cleanup"))
        except ValidationError as e:
            raise CollaboratorError(f"cleanup: malformed result: {e}") from e


def build_collaborators(http: HttpClient, base_url: str, clock: Optional[Clock] = None):
    """The three HTTP collaborators sharing one client."""
    return (
        HttpExternalScraper(http, base_url),
        HttpHealthInspector(http, base_url, clock=clock),
        HttpExpiredRecordPurger(http, base_url),
    )
