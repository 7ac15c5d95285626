"""
Two-phase cleanup of expired records: always count first, only then delete.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import CleanupError
from .infra.clock import Clock
from .interfaces import ExpiredRecordPurger
from .models import CleanupReport, CleanupResult

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """Enforces dry-run-then-destroy around an ExpiredRecordPurger.

    The purger evaluates each record against its source's ``ttl_days``; this
    class never decides what is expired.
    """

    def __init__(self, purger: ExpiredRecordPurger, clock: Optional[Clock] = None):
        self._purger = purger
        self._clock = clock or Clock()

    async def cleanup(self, dry_run: bool = True) -> CleanupResult:
        """Single delegated call. Defaults to the non-destructive mode."""
        logger.info(f"Starting expired record cleanup (dry_run={dry_run})")
        result = await self._purger.cleanup_expired_records(dry_run)
        if isinstance(result, dict):
            result = CleanupResult.model_validate(result)

        if dry_run:
            logger.info(f"Would delete {result.deleted} expired records")
        else:
            logger.info(f"Deleted {result.deleted} expired records")
        return result

    async def run(self) -> CleanupReport:
        """Dry-run, then delete only when the dry-run found candidates.

        Raises CleanupError when the dry-run fails or reports errors; the
        destructive call is never made in that case. Errors from the
        destructive phase propagate unchanged.
        """
        started = self._clock.monotonic()

        try:
            preview = await self.cleanup(dry_run=True)
        except Exception as e:
            raise CleanupError(f"Dry-run failed: {e}") from e
        if preview.errors:
            raise CleanupError(f"Dry-run reported {preview.errors} errors")

        if preview.deleted <= 0:
            return CleanupReport(
                would_delete=0,
                executed=False,
                duration_ms=self._clock.elapsed_ms(started),
            )

        result = await self.cleanup(dry_run=False)
        return CleanupReport(
            would_delete=preview.deleted,
            deleted=result.deleted,
            errors=result.errors,
            executed=True,
            duration_ms=self._clock.elapsed_ms(started),
        )
