"""
Wiring of the job scheduler from a loaded configuration.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .cleanup import CleanupCoordinator
from .collaborators import build_collaborators
from .config import JobsConfig
from .health import HealthMonitor
from .infra.clock import Clock
from .infra.http import HttpClient
from .infra.scheduler import TriggerScheduler
from .interfaces import ExpiredRecordPurger, ExternalScraper, HealthInspector
from .metrics import MetricsRecorder
from .orchestrator import JobScheduler
from .source_runner import SourceScrapeRunner


def build_job_scheduler(
    config: JobsConfig,
    scraper: ExternalScraper,
    inspector: HealthInspector,
    purger: ExpiredRecordPurger,
    *,
    clock: Optional[Clock] = None,
    scheduler: Optional[TriggerScheduler] = None,
    metrics: Optional[MetricsRecorder] = None,
) -> JobScheduler:
    clock = clock or Clock()
    metrics = metrics or MetricsRecorder(clock=clock)
    return JobScheduler(
        sources=config.sources,
        schedule=config.schedule,
        runner=SourceScrapeRunner(scraper, metrics, clock=clock),
        health_monitor=HealthMonitor(inspector, config.health, clock=clock),
        cleanup_coordinator=CleanupCoordinator(purger, clock=clock),
        metrics=metrics,
        scheduler=scheduler,
        clock=clock,
    )


@asynccontextmanager
async def http_job_scheduler(config: JobsConfig, clock: Optional[Clock] = None) -> AsyncIterator[JobScheduler]:
    """Job scheduler talking to the HTTP collaborators; closes the client on exit."""
    settings = config.collaborators
    headers = {"Authorization": f"Bearer {settings.api_key}"} if settings.api_key else None

    async with HttpClient(
        timeout=settings.timeout_seconds,
        max_retries=settings.max_retries,
        default_headers=headers,
    ) as http:
        scraper, inspector, purger = build_collaborators(http, settings.base_url, clock=clock)
        yield build_job_scheduler(config, scraper, inspector, purger, clock=clock)
