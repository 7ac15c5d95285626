"""
Core data models for the job orchestration service.

Configuration models are loaded once at start and never mutated. Outcome
models are appended to the metrics ledger and never mutated either; both are
declared frozen.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    # Reserved; the classification policy never produces it.
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class SourceConfig(BaseModel):
    """One externally scraped listing provider."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)  # may contain a {page} placeholder
    page_count: int = Field(default=1, ge=1)
    enabled: bool = True
    timeout_ms: int = Field(default=30000, gt=0)
    max_retries: int = Field(default=3, ge=1)
    batch_size: int = Field(default=50, ge=1)
    ttl_days: int = Field(default=30, ge=1)
    api_key: Optional[str] = Field(default=None, repr=False)


class ScheduleConfig(BaseModel):
    """Cadence specs for the three triggers."""
    model_config = ConfigDict(frozen=True)

    scrape_cadence: str = "*/30 * * * * *"
    health_cadence: str = "*/5 * * * *"
    cleanup_cadence: str = "0 2 * * *"
    timezone: str = "UTC"


class HealthThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_recent_errors: int = Field(default=0, ge=0)
    staleness: timedelta = timedelta(days=7)
    min_record_count: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class ScrapeRequest(BaseModel):
    """A source resolved for one concrete request (one page)."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    source: str
    endpoint: str
    page: int = 1
    timeout_ms: int
    max_retries: int
    batch_size: int
    ttl_days: int
    api_key: Optional[str] = Field(default=None, repr=False)


class ScrapeErrorDetail(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    error: str
    timestamp: Optional[datetime] = None


class ScrapeResult(BaseModel):
    """Counts returned by the external scraper for one or more requests."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    total_processed: int = 0
    duration: int = 0  # ms, as measured by the collaborator
    error_details: List[ScrapeErrorDetail] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Signal returned by the record-staleness inspector."""
    status: Optional[str] = None
    external_record_count: int = 0
    oldest_record_age: Optional[timedelta] = None
    recent_error_count: int = 0


class CleanupResult(BaseModel):
    deleted: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class ScrapeOutcome(BaseModel):
    """Result of one SourceScrapeRunner.scrape() call."""
    model_config = ConfigDict(frozen=True)

    source: str
    success: bool
    duration_ms: int
    error: Optional[str] = None
    timestamp: datetime


class CycleOutcome(BaseModel):
    """Result of one scrape-trigger tick."""
    model_config = ConfigDict(frozen=True)

    cycle_id: str
    duration_ms: int
    success: bool
    source_count: int
    error: Optional[str] = None
    timestamp: datetime


class HealthSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HealthStatus
    external_record_count: int = 0
    oldest_record_age: Optional[timedelta] = None
    recent_error_count: int = 0
    error: Optional[str] = None
    timestamp: datetime

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


class CleanupOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted_count: int
    duration_ms: int
    success: bool
    error: Optional[str] = None
    timestamp: datetime


class CleanupReport(BaseModel):
    """Both phases of one cleanup run, as seen by the coordinator."""
    would_delete: int
    deleted: int = 0
    errors: int = 0
    executed: bool = False
    duration_ms: int = 0


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


class WindowStats(BaseModel):
    total: int
    recent: int
    success_rate: str
    average_duration_ms: int


class CleanupStats(BaseModel):
    total: int
    recent: int
    success_rate: str
    recent_deleted: int
    total_deleted: int


class HealthStats(BaseModel):
    total: int
    recent: int
    success_rate: str
    latest_status: Optional[HealthStatus] = None


class MetricsSummary(BaseModel):
    scrapes: WindowStats
    cycles: WindowStats
    cleanups: CleanupStats
    health: HealthStats
    generated_at: datetime
