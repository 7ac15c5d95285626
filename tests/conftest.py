import pytest

from listing_jobs.cleanup import CleanupCoordinator
from listing_jobs.health import HealthMonitor
from listing_jobs.metrics import MetricsRecorder
from listing_jobs.models import ScheduleConfig
from listing_jobs.orchestrator import JobScheduler
from listing_jobs.source_runner import SourceScrapeRunner

from .fakes import FakeClock, FakeInspector, FakePurger, FakeScraper, ManualScheduler


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "APP_ENV",
        "ENVIRONMENT",
        "JOBS_CONFIG",
        "SCRAPE_CADENCE",
        "HEALTH_CADENCE",
        "CLEANUP_CADENCE",
        "SCHEDULER_TIMEZONE",
        "SCRAPER_API_URL",
        "SCRAPER_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics(clock):
    return MetricsRecorder(clock=clock)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def build_jobs(clock, metrics, scheduler):
    """Factory wiring a JobScheduler over fakes."""

    def _build(sources, scraper=None, inspector=None, purger=None, schedule=None):
        return JobScheduler(
            sources=sources,
            schedule=schedule or ScheduleConfig(),
            runner=SourceScrapeRunner(scraper or FakeScraper(clock=clock), metrics, clock=clock),
            health_monitor=HealthMonitor(inspector or FakeInspector(), clock=clock),
            cleanup_coordinator=CleanupCoordinator(purger or FakePurger(), clock=clock),
            metrics=metrics,
            scheduler=scheduler,
            clock=clock,
        )

    return _build
