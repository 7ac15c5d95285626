"""
Scheduler infrastructure for running periodic triggers.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from croniter import croniter

from ..errors import CadenceError


logger = logging.getLogger(__name__)

TriggerCallback = Callable[[], Awaitable[None]]

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_INTERVAL_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

# cron numbering: 0 (and 7) is Sunday
_CRON_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


@dataclass(frozen=True)
class Cadence:
    """A parsed cadence spec: either cron fields or a fixed interval."""
    spec: str
    cron_fields: Optional[Dict[str, str]] = None
    interval: Optional[Dict[str, int]] = None

    @property
    def kind(self) -> str:
        return "cron" if self.cron_fields is not None else "interval"


def _validate_cron_expression(cron_expression: str) -> bool:
    """Validate cron expression using croniter."""
    try:
        croniter(cron_expression)
        return True
    except Exception as e:
        logger.error(f"Invalid cron expression '{cron_expression}': {e}")
        return False


def parse_cadence(spec: str) -> Cadence:
    """Parse a cadence spec.

    Accepted forms:
        ``"*/5 * * * *"``      five-field cron (minute hour day month day_of_week)
        ``"*/30 * * * * *"``   six-field cron with a leading seconds field
        ``"30s"``, ``"5m"``, ``"2h"``, ``"1d"``   fixed interval
    """
    if not isinstance(spec, str) or not spec.strip():
        raise CadenceError(f"Empty cadence spec: {spec!r}")

    match = _INTERVAL_RE.match(spec)
    if match:
        amount = int(match.group(1))
        if amount <= 0:
            raise CadenceError(f"Interval must be positive: {spec!r}")
        return Cadence(spec=spec, interval={_INTERVAL_UNITS[match.group(2)]: amount})

    parts = spec.split()
    if len(parts) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = parts
        croniter_expr = spec
    elif len(parts) == 6:
        second, minute, hour, day, month, day_of_week = parts
        # croniter expects the seconds field last
        croniter_expr = " ".join([minute, hour, day, month, day_of_week, second])
    else:
        raise CadenceError(
            f"Cadence {spec!r} must be a 5 or 6 field cron expression or an interval like '30s'"
        )

    if not _validate_cron_expression(croniter_expr):
        raise CadenceError(f"Invalid cron expression: {spec!r}")

    return Cadence(
        spec=spec,
        cron_fields={
            "second": second,
            "minute": minute,
            "hour": hour,
            "day": day,
            "month": month,
            "day_of_week": day_of_week,
        },
    )


def _weekday_number(token: str) -> int:
    if token.isdigit():
        return int(token)
    return _CRON_WEEKDAYS.index(token.lower()[:3])


def cron_day_of_week(field: str) -> str:
    """Rewrite a cron day-of-week field as weekday names.

    APScheduler numbers weekdays from Monday, so numeric cron values are
    expanded into an explicit list of names (``"1-5"`` -> ``"mon,tue,wed,thu,fri"``).
    Fields without digits are passed through unchanged.
    """
    if not any(c.isdigit() for c in field):
        return field

    days = set()
    try:
        for part in field.split(","):
            span, _, step = part.partition("/")
            step_size = int(step) if step else 1
            if span == "*":
                first, last = 0, 6
            elif "-" in span:
                first, last = (_weekday_number(token) for token in span.split("-", 1))
            else:
                first = _weekday_number(span)
                last = 6 if step else first
            days.update(day % 7 for day in range(first, last + 1, step_size))
    except ValueError as e:
        raise CadenceError(f"Unsupported day-of-week field {field!r}: {e}") from e

    return ",".join(_CRON_WEEKDAYS[day] for day in sorted(days))


def build_trigger(cadence: Union[str, Cadence], timezone: str = "UTC") -> Union[CronTrigger, IntervalTrigger]:
    """Turn a cadence into an APScheduler trigger evaluated in ``timezone``."""
    if isinstance(cadence, str):
        cadence = parse_cadence(cadence)

    if cadence.interval is not None:
        return IntervalTrigger(timezone=timezone, **cadence.interval)

    fields = cadence.cron_fields or {}
    return CronTrigger(
        second=fields["second"],
        minute=fields["minute"] if fields["minute"] != "*" else None,
        hour=fields["hour"] if fields["hour"] != "*" else None,
        day=fields["day"] if fields["day"] != "*" else None,
        month=fields["month"] if fields["month"] != "*" else None,
        day_of_week=cron_day_of_week(fields["day_of_week"]) if fields["day_of_week"] != "*" else None,
        timezone=timezone,
    )


class TriggerScheduler(ABC):
    """Capability the JobScheduler needs from a timer implementation."""

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    def register_trigger(self, cadence: str, callback: TriggerCallback, name: Optional[str] = None) -> str:
        """Fire ``callback`` on every tick of ``cadence``; returns a handle."""
        ...

    @abstractmethod
    def cancel(self, handle: str) -> None:
        ...


class Scheduler(TriggerScheduler):
    """Async trigger scheduler wrapper around APScheduler (in-memory job store)."""

    def __init__(self, timezone: str = "UTC", misfire_grace_time: int = 60):
        # max_instances=1 lets APScheduler drop overlapping ticks as well
        job_defaults = {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': misfire_grace_time,
        }

        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(
            job_defaults=job_defaults,
            timezone=timezone
        )
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the scheduler."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Scheduler started (timezone={self.timezone})")

    async def stop(self) -> None:
        """Stop the scheduler. Running callbacks are not interrupted."""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    def register_trigger(self, cadence: str, callback: TriggerCallback, name: Optional[str] = None) -> str:
        """Add a job firing ``callback`` on ``cadence``; the job id is the handle."""
        trigger = build_trigger(cadence, timezone=self.timezone)
        job_id = name or getattr(callback, "__name__", None)

        job = self._scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
        )

        logger.info(f"Added trigger: {job.id} ({cadence})")
        return job.id

    def cancel(self, handle: str) -> None:
        """Remove a job by handle; unknown handles are ignored."""
        if self._scheduler.get_job(handle) is None:
            logger.debug(f"Trigger already removed: {handle}")
            return
        self._scheduler.remove_job(handle)
        logger.info(f"Removed trigger: {handle}")

    def list_jobs(self) -> Dict[str, Any]:
        """List all registered triggers."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs
