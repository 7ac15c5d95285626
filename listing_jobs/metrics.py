"""
Append-only ledger of operation outcomes.

The recorder is the only state shared between concurrently running ticks.
All tasks run on one event loop and writes are plain appends, so no lock is
taken. Summaries are computed on read; nothing here is derived from logs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, TypeVar

from .infra.clock import Clock
from .models import (
    CleanupOutcome,
    CleanupStats,
    CycleOutcome,
    HealthSnapshot,
    HealthStats,
    HealthStatus,
    MetricsSummary,
    ScrapeOutcome,
    WindowStats,
)

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=7)
RECENT_WINDOW = timedelta(hours=1)
CLEANUP_WINDOW = timedelta(hours=24)

T = TypeVar("T")


def format_success_rate(successes: int, attempts: int) -> str:
    """``"NN.NN%"``; ``"0%"`` when there were no attempts."""
    if attempts <= 0:
        return "0%"
    return f"{successes / attempts * 100:.2f}%"


def average_duration(durations: Sequence[int]) -> int:
    if not durations:
        return 0
    return int(round(sum(durations) / len(durations)))


class MetricsRecorder:
    """In-memory metrics store for scrape, cycle, health and cleanup outcomes."""

    def __init__(self, clock: Optional[Clock] = None, retention: timedelta = RETENTION):
        self._clock = clock or Clock()
        self._retention = retention
        self.scrapes: List[ScrapeOutcome] = []
        self.cycles: List[CycleOutcome] = []
        self.health: List[HealthSnapshot] = []
        self.cleanups: List[CleanupOutcome] = []

    def _append(self, collection: List[T], build: Callable[[], T]) -> Optional[T]:
        try:
            entry = build()
        except Exception as e:
            logger.error(f"Failed to record metric: {e}", exc_info=True)
            return None
        collection.append(entry)
        return entry

    @staticmethod
    def _error_message(error: BaseException | str | None) -> str:
        if error is None:
            return "Unknown error"
        message = str(error)
        return message or type(error).__name__

    # ---------------------------------------------- #
    # Scrapes
    def record_scrape_success(self, source: str, duration_ms: int) -> Optional[ScrapeOutcome]:
        outcome = self._append(self.scrapes, lambda: ScrapeOutcome(
            source=source,
            success=True,
            duration_ms=duration_ms,
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded scrape success for {source} ({duration_ms}ms)")
        return outcome

    def record_scrape_error(self, source: str, error: BaseException | str | None, duration_ms: int) -> Optional[ScrapeOutcome]:
        outcome = self._append(self.scrapes, lambda: ScrapeOutcome(
            source=source,
            success=False,
            duration_ms=duration_ms,
            error=self._error_message(error),
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded scrape error for {source} ({duration_ms}ms): {error}")
        return outcome

    # ---------------------------------------------- #
    # Cycles
    def record_cycle_success(self, cycle_id: str, duration_ms: int, source_count: int) -> Optional[CycleOutcome]:
        outcome = self._append(self.cycles, lambda: CycleOutcome(
            cycle_id=cycle_id,
            duration_ms=duration_ms,
            success=True,
            source_count=source_count,
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded cycle success {cycle_id} ({duration_ms}ms, {source_count} sources)")
        return outcome

    def record_cycle_error(self, cycle_id: str, error: BaseException | str | None, duration_ms: int) -> Optional[CycleOutcome]:
        outcome = self._append(self.cycles, lambda: CycleOutcome(
            cycle_id=cycle_id,
            duration_ms=duration_ms,
            success=False,
            source_count=0,
            error=self._error_message(error),
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded cycle error {cycle_id} ({duration_ms}ms): {error}")
        return outcome

    # ---------------------------------------------- #
    # Health
    def record_health_success(self, snapshot: HealthSnapshot) -> Optional[HealthSnapshot]:
        self._append(self.health, lambda: snapshot)
        logger.debug("Recorded health check success")
        return snapshot

    def record_health_failure(self, snapshot: Optional[HealthSnapshot] = None, error: BaseException | str | None = None) -> Optional[HealthSnapshot]:
        entry = self._append(self.health, lambda: snapshot or HealthSnapshot(
            status=HealthStatus.UNHEALTHY,
            error=self._error_message(error),
            timestamp=self._clock.now(),
        ))
        logger.debug("Recorded health check failure")
        return entry

    # ---------------------------------------------- #
    # Cleanups
    def record_cleanup_success(self, deleted_count: int, duration_ms: int = 0) -> Optional[CleanupOutcome]:
        outcome = self._append(self.cleanups, lambda: CleanupOutcome(
            deleted_count=deleted_count,
            duration_ms=duration_ms,
            success=True,
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded cleanup success ({deleted_count} deleted)")
        return outcome

    def record_cleanup_failure(self, error: BaseException | str | None = None, duration_ms: int = 0, deleted_count: int = 0) -> Optional[CleanupOutcome]:
        outcome = self._append(self.cleanups, lambda: CleanupOutcome(
            deleted_count=deleted_count,
            duration_ms=duration_ms,
            success=False,
            error=self._error_message(error),
            timestamp=self._clock.now(),
        ))
        logger.debug(f"Recorded cleanup failure: {error}")
        return outcome

    # ---------------------------------------------- #
    # Reads
    @staticmethod
    def _since(entries: Sequence[T], cutoff: datetime) -> List[T]:
        return [e for e in entries if e.timestamp > cutoff]

    def latest_health(self) -> Optional[HealthSnapshot]:
        if not self.health:
            return None
        return max(self.health, key=lambda s: s.timestamp)

    def summary(self) -> MetricsSummary:
        """Windowed summary: 1h for scrapes, cycles and health; 24h for cleanups."""
        now = self._clock.now()
        recent_cutoff = now - RECENT_WINDOW
        cleanup_cutoff = now - CLEANUP_WINDOW

        recent_scrapes = self._since(self.scrapes, recent_cutoff)
        recent_cycles = self._since(self.cycles, recent_cutoff)
        recent_health = self._since(self.health, recent_cutoff)
        recent_cleanups = self._since(self.cleanups, cleanup_cutoff)
        latest = self.latest_health()

        return MetricsSummary(
            scrapes=WindowStats(
                total=len(self.scrapes),
                recent=len(recent_scrapes),
                success_rate=format_success_rate(sum(1 for s in recent_scrapes if s.success), len(recent_scrapes)),
                average_duration_ms=average_duration([s.duration_ms for s in recent_scrapes]),
            ),
            cycles=WindowStats(
                total=len(self.cycles),
                recent=len(recent_cycles),
                success_rate=format_success_rate(sum(1 for c in recent_cycles if c.success), len(recent_cycles)),
                average_duration_ms=average_duration([c.duration_ms for c in recent_cycles]),
            ),
            cleanups=CleanupStats(
                total=len(self.cleanups),
                recent=len(recent_cleanups),
                success_rate=format_success_rate(sum(1 for c in recent_cleanups if c.success), len(recent_cleanups)),
                recent_deleted=sum(c.deleted_count for c in recent_cleanups),
                total_deleted=sum(c.deleted_count for c in self.cleanups),
            ),
            health=HealthStats(
                total=len(self.health),
                recent=len(recent_health),
                success_rate=format_success_rate(sum(1 for h in recent_health if h.healthy), len(recent_health)),
                latest_status=latest.status if latest else None,
            ),
            generated_at=now,
        )

    def prune(self) -> int:
        """Drop entries older than the retention period; returns how many went."""
        cutoff = self._clock.now() - self._retention
        removed = 0
        for name in ("scrapes", "cycles", "health", "cleanups"):
            entries = getattr(self, name)
            kept = self._since(entries, cutoff)
            removed += len(entries) - len(kept)
            setattr(self, name, kept)
        if removed:
            logger.info(f"Pruned {removed} metric entries older than {self._retention.days} days")
        return removed
