"""
Scraper health classification.

Policy, evaluated in order:
    - the inspector raised                                -> unhealthy
    - recent_error_count > max_recent_errors              -> unhealthy
    - oldest_record_age > staleness                       -> unhealthy
    - external_record_count < min_record_count (if > 0)   -> unhealthy
    - otherwise                                           -> healthy

``degraded`` is never produced.
"""

from __future__ import annotations

import logging
from typing import Optional

from .infra.clock import Clock
from .interfaces import HealthInspector
from .models import HealthReport, HealthSnapshot, HealthStatus, HealthThresholds

logger = logging.getLogger(__name__)


def classify(report: HealthReport, thresholds: HealthThresholds) -> tuple[HealthStatus, Optional[str]]:
    """Return the status for ``report`` and, when unhealthy, the reason."""
    if report.recent_error_count > thresholds.max_recent_errors:
        return HealthStatus.UNHEALTHY, (
            f"{report.recent_error_count} recent errors exceeds {thresholds.max_recent_errors}"
        )
    if report.oldest_record_age is not None and report.oldest_record_age > thresholds.staleness:
        return HealthStatus.UNHEALTHY, (
            f"oldest record age {report.oldest_record_age} exceeds {thresholds.staleness}"
        )
    if thresholds.min_record_count and report.external_record_count < thresholds.min_record_count:
        return HealthStatus.UNHEALTHY, (
            f"{report.external_record_count} external records below {thresholds.min_record_count}"
        )
    return HealthStatus.HEALTHY, None


class HealthMonitor:
    def __init__(
        self,
        inspector: HealthInspector,
        thresholds: Optional[HealthThresholds] = None,
        clock: Optional[Clock] = None,
    ):
        self._inspector = inspector
        self.thresholds = thresholds or HealthThresholds()
        self._clock = clock or Clock()

    async def get_health(self) -> HealthSnapshot:
        """Classify the inspector's signal. Never raises."""
        try:
            report = await self._inspector.get_scraper_health()
            if isinstance(report, dict):
                report = HealthReport.model_validate(report)
            status, reason = classify(report, self.thresholds)
            return HealthSnapshot(
                status=status,
                external_record_count=report.external_record_count,
                oldest_record_age=report.oldest_record_age,
                recent_error_count=report.recent_error_count,
                error=reason,
                timestamp=self._clock.now(),
            )
        except Exception as e:
            logger.error(f"Health inspection failed: {e}", exc_info=True)
            return HealthSnapshot(
                status=HealthStatus.UNHEALTHY,
                error=str(e) or type(e).__name__,
                timestamp=self._clock.now(),
            )
