"""
Job scheduler owning the scrape, health and cleanup triggers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .cleanup import CleanupCoordinator
from .health import HealthMonitor
from .infra.clock import Clock
from .infra.scheduler import Scheduler, TriggerScheduler
from .metrics import MetricsRecorder
from .models import (
    CleanupOutcome,
    CleanupResult,
    CycleOutcome,
    HealthSnapshot,
    HealthStatus,
    MetricsSummary,
    ScheduleConfig,
    ScrapeResult,
    SourceConfig,
)
from .source_runner import SourceScrapeRunner


logger = logging.getLogger(__name__)

SCRAPE = "scrape"
HEALTH = "health"
CLEANUP = "cleanup"
TRIGGERS = (SCRAPE, HEALTH, CLEANUP)

SourcesProvider = Union[Sequence[SourceConfig], Callable[[], Iterable[SourceConfig]]]


class JobScheduler:
    """Runs three independently cadenced triggers.

    A tick that fires while the previous tick of the same trigger is still
    running is skipped, never queued. Every tick catches its own failures and
    turns them into failure-shaped outcomes, so no tick can take the process
    or a trigger's cadence down with it.
    """

    def __init__(
        self,
        sources: SourcesProvider,
        schedule: ScheduleConfig,
        runner: SourceScrapeRunner,
        health_monitor: HealthMonitor,
        cleanup_coordinator: CleanupCoordinator,
        metrics: MetricsRecorder,
        scheduler: Optional[TriggerScheduler] = None,
        clock: Optional[Clock] = None,
    ):
        self._sources = sources
        self.schedule = schedule
        self._runner = runner
        self._health = health_monitor
        self._cleanup = cleanup_coordinator
        self.metrics = metrics
        self._scheduler = scheduler or Scheduler(timezone=schedule.timezone)
        self._clock = clock or Clock()

        self._handles: Dict[str, str] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._active = False

    # ---------------------------------------------- #
    # Lifecycle
    async def start(self) -> None:
        """Register and activate all triggers. Calling it again is a no-op."""
        if self._active:
            return

        cadences = {
            SCRAPE: (self.schedule.scrape_cadence, self.run_scrape_cycle),
            HEALTH: (self.schedule.health_cadence, self.run_health_check),
            CLEANUP: (self.schedule.cleanup_cadence, self.run_cleanup),
        }
        for name, (cadence, job) in cadences.items():
            self._handles[name] = self._scheduler.register_trigger(
                cadence, self._make_tick(name, job), name=name
            )
            logger.info(f"Scheduled '{name}' trigger with cadence '{cadence}' ({self.schedule.timezone})")

        await self._scheduler.start()
        self._active = True

        logger.info("All triggers initialized")
        self._log_enabled_sources()

    async def stop(self, wait: bool = True) -> None:
        """Deactivate all triggers; in-flight ticks are allowed to finish.

        With ``wait`` the call returns once they have. Calling it again is a
        no-op.
        """
        if not self._active and not self._handles:
            return

        self._active = False
        for name, handle in list(self._handles.items()):
            self._scheduler.cancel(handle)
            logger.info(f"Stopped trigger: {name}")
        self._handles.clear()
        await self._scheduler.stop()

        if wait:
            current = asyncio.current_task()
            pending = [t for t in self._inflight.values() if t is not current and not t.done()]
            if pending:
                logger.info(f"Waiting for {len(pending)} in-flight tick(s) to finish")
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Job scheduler stopped")

    def status(self) -> Dict[str, bool]:
        """Trigger name -> whether it is active."""
        return {name: self._active and name in self._handles for name in TRIGGERS}

    def running_ticks(self) -> List[str]:
        return [name for name, task in self._inflight.items() if not task.done()]

    @property
    def active(self) -> bool:
        return self._active

    # ---------------------------------------------- #
    # Tick guard
    def _make_tick(self, name: str, job: Callable[[], Awaitable[object]]) -> Callable[[], Awaitable[None]]:
        async def tick() -> None:
            # APScheduler cancels running job futures on shutdown; the tick body must survive that.
            await asyncio.shield(asyncio.ensure_future(self._run_tick(name, job)))

        tick.__name__ = f"{name}_tick"
        return tick

    async def _run_tick(self, name: str, job: Callable[[], Awaitable[object]]) -> None:
        if not self._active:
            logger.info(f"Trigger '{name}' fired after stop, skipping")
            return

        previous = self._inflight.get(name)
        if previous is not None and not previous.done():
            logger.warning(f"Previous '{name}' tick still running, skipping this tick")
            return

        self._inflight[name] = asyncio.current_task()
        try:
            await job()
        except Exception as e:
            logger.error(f"Unhandled error in '{name}' tick: {e}", exc_info=True)
        finally:
            self._inflight.pop(name, None)

    # ---------------------------------------------- #
    # Jobs
    def _load_sources(self) -> List[SourceConfig]:
        if callable(self._sources):
            return list(self._sources())
        return list(self._sources)

    async def _scrape_isolated(self, source: SourceConfig) -> bool:
        """Scrape one source; its failure stays here."""
        try:
            await self._runner.scrape(source)
            return True
        except Exception as e:
            logger.error(f"Failed to scrape {source.name}: {e}")
            return False

    async def run_scrape_cycle(self) -> Optional[CycleOutcome]:
        """Scrape every enabled source concurrently and record one CycleOutcome.

        Returns None, recording nothing, when no source is enabled.
        """
        started = self._clock.monotonic()
        cycle_id = f"cycle_{int(self._clock.now().timestamp() * 1000)}"

        try:
            logger.info(f"Starting scrape cycle {cycle_id}")

            enabled = [s for s in self._load_sources() if s.enabled]
            if not enabled:
                logger.info("No enabled sources found")
                return None

            results = await asyncio.gather(*(self._scrape_isolated(s) for s in enabled))

            duration_ms = self._clock.elapsed_ms(started)
            outcome = self.metrics.record_cycle_success(cycle_id, duration_ms, len(enabled))
            logger.info(
                f"Scrape cycle {cycle_id} completed in {duration_ms}ms "
                f"({results.count(True)}/{len(enabled)} sources succeeded)"
            )
            return outcome

        except Exception as e:
            duration_ms = self._clock.elapsed_ms(started)
            logger.error(f"Scrape cycle {cycle_id} failed: {e}", exc_info=True)
            return self.metrics.record_cycle_error(cycle_id, e, duration_ms)

    async def run_health_check(self) -> HealthSnapshot:
        """Record the monitor's snapshot, or a pessimistic one if it raised."""
        try:
            snapshot = await self._health.get_health()
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            snapshot = HealthSnapshot(
                status=HealthStatus.UNHEALTHY,
                error=str(e) or type(e).__name__,
                timestamp=self._clock.now(),
            )
            self.metrics.record_health_failure(snapshot)
        else:
            logger.info(
                f"Health check completed: status={snapshot.status.value} "
                f"external_records={snapshot.external_record_count} "
                f"oldest_record_age={snapshot.oldest_record_age}"
            )
            if snapshot.healthy:
                self.metrics.record_health_success(snapshot)
            else:
                logger.warning(f"Scraper health is unhealthy: {snapshot.error}")
                self.metrics.record_health_failure(snapshot)

        self.metrics.prune()
        return snapshot

    async def run_cleanup(self) -> Optional[CleanupOutcome]:
        """Dry-run first; delete and record an outcome only when something expired."""
        started = self._clock.monotonic()
        try:
            logger.info("Starting expired record cleanup")
            report = await self._cleanup.run()
        except Exception as e:
            logger.error(f"Cleanup failed: {e}", exc_info=True)
            return self.metrics.record_cleanup_failure(e, self._clock.elapsed_ms(started))

        if not report.executed:
            logger.info("No expired records to delete")
            return None

        if report.errors:
            logger.error(f"Cleanup deleted {report.deleted} records with {report.errors} errors")
            return self.metrics.record_cleanup_failure(
                f"{report.errors} errors during deletion",
                report.duration_ms,
                deleted_count=report.deleted,
            )

        logger.info(f"Deleted {report.deleted} expired records in {report.duration_ms}ms")
        return self.metrics.record_cleanup_success(report.deleted, report.duration_ms)

    # ---------------------------------------------- #
    # Operator actions and queries
    async def scrape_source(self, source: SourceConfig) -> Optional[ScrapeResult]:
        """Scrape one source outside any cycle. Failures propagate."""
        return await self._runner.scrape(source)

    async def preview_cleanup(self) -> CleanupResult:
        """Dry-run only; never deletes."""
        return await self._cleanup.cleanup(dry_run=True)

    def metrics_summary(self) -> MetricsSummary:
        return self.metrics.summary()

    def latest_health(self) -> Optional[HealthSnapshot]:
        return self.metrics.latest_health()

    def sources(self) -> List[SourceConfig]:
        return self._load_sources()

    def _log_enabled_sources(self) -> None:
        try:
            enabled = [s.name for s in self._load_sources() if s.enabled]
        except Exception as e:
            logger.warning(f"Could not list configured sources: {e}")
            return
        logger.info(f"Configured sources: {', '.join(enabled) or '(none enabled)'}")
