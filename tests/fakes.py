"""Test doubles for the clock, trigger scheduler and collaborators."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

from listing_jobs.infra.clock import Clock
from listing_jobs.infra.scheduler import TriggerScheduler, parse_cadence
from listing_jobs.interfaces import ExpiredRecordPurger, ExternalScraper, HealthInspector
from listing_jobs.models import (
    CleanupResult,
    HealthReport,
    ScrapeRequest,
    ScrapeResult,
    SourceConfig,
)

EPOCH = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    """Virtual time: sleep() advances the clock instead of waiting."""

    def __init__(self, start: datetime = EPOCH):
        self._now = start
        self._mono = 1000.0
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds

    def set_now(self, when: datetime) -> None:
        self._now = when

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class ManualScheduler(TriggerScheduler):
    """Trigger capability whose ticks are fired by the test."""

    def __init__(self):
        self.callbacks: Dict[str, Callable] = {}
        self.cadences: Dict[str, str] = {}
        self.started = False
        self.start_calls = 0
        self.cancelled: List[str] = []

    async def start(self) -> None:
        self.started = True
        self.start_calls += 1

    async def stop(self) -> None:
        self.started = False

    def register_trigger(self, cadence, callback, name=None) -> str:
        parse_cadence(cadence)
        handle = name or callback.__name__
        self.callbacks[handle] = callback
        self.cadences[handle] = cadence
        return handle

    def cancel(self, handle: str) -> None:
        self.cancelled.append(handle)
        self.callbacks.pop(handle, None)

    async def fire(self, handle: str) -> None:
        await self.callbacks[handle]()


class FakeScraper(ExternalScraper):
    """Scripted external scraper.

    ``behaviours`` maps a source name to a ScrapeResult, an exception, or a
    list of those consumed one per call. Each successful call advances the
    clock by the result's duration.
    """

    def __init__(self, behaviours: Optional[Dict[str, object]] = None, clock: Optional[FakeClock] = None):
        self.behaviours = behaviours or {}
        self.clock = clock
        self.calls: List[ScrapeRequest] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def run_external_scrape(self, request: ScrapeRequest) -> ScrapeResult:
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)

            behaviour = self.behaviours.get(request.source, ScrapeResult())
            if isinstance(behaviour, list):
                behaviour = behaviour.pop(0)
            if callable(behaviour) and not isinstance(behaviour, ScrapeResult):
                behaviour = await behaviour(request)
            if isinstance(behaviour, BaseException):
                raise behaviour
            if not isinstance(behaviour, ScrapeResult):
                return behaviour

            if self.clock is not None:
                self.clock.advance(behaviour.duration / 1000)
            return behaviour.model_copy(deep=True)
        finally:
            self.in_flight -= 1


class FakeInspector(HealthInspector):
    def __init__(self, report: Union[HealthReport, Exception, None] = None):
        self.report = report if report is not None else HealthReport(external_record_count=10)
        self.calls = 0

    async def get_scraper_health(self) -> HealthReport:
        self.calls += 1
        if isinstance(self.report, Exception):
            raise self.report
        return self.report


class FakePurger(ExpiredRecordPurger):
    def __init__(self, dry_run_result=None, delete_result=None):
        self.dry_run_result = dry_run_result if dry_run_result is not None else CleanupResult(deleted=0)
        self.delete_result = delete_result
        self.calls: List[bool] = []

    async def cleanup_expired_records(self, dry_run: bool) -> CleanupResult:
        self.calls.append(dry_run)
        result = self.dry_run_result if dry_run else self.delete_result
        if result is None:
            result = CleanupResult(deleted=self.dry_run_result.deleted)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def destructive_calls(self) -> int:
        return sum(1 for dry_run in self.calls if not dry_run)


def make_source(name: str = "fotocasa", **overrides) -> SourceConfig:
    fields = {"name": name, "endpoint": f"http://listings.test/{name}"}
    fields.update(overrides)
    return SourceConfig(**fields)
