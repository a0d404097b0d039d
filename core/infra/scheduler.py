"""
Scheduler infrastructure for running poll cycles.

Wraps APScheduler's asyncio scheduler with one job per pipeline and a
single running instance per job. Jobs live in memory only.
"""

import logging
import re
from datetime import datetime, timedelta, timezone as dt_timezone
from datetime import tzinfo
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from croniter import croniter

from ..config import ConfigurationError, IntervalSchedule, ScheduleSpec, Trigger


logger = logging.getLogger(__name__)

# First "every" run is a hair after scheduling rather than exactly now
FIRST_EVERY_DELAY = timedelta(seconds=0.01)

_DURATION_UNITS = {
    "y": 365 * 86400.0,
    "M": 30 * 86400.0,
    "w": 7 * 86400.0,
    "d": 86400.0,
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 0.001,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|[yMwdhms])")
_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_AT_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d",
)


def _resolve_timezone(name: str) -> Optional[tzinfo]:
    """Return a tzinfo for *name*, or None when it is not a timezone."""
    if name.upper() in ("UTC", "GMT", "Z"):
        return dt_timezone.utc
    if not re.match(r"^[A-Za-z][A-Za-z0-9_+\-]*(/[A-Za-z0-9_+\-]+)*$", name):
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def parse_duration(text: str) -> float:
    """Parse a duration such as ``"30s"``, ``"1h30m"``, ``"250ms"`` or ``"90"`` into seconds."""
    value = str(text).strip()
    try:
        seconds = float(value)
    except ValueError:
        if not value or _DURATION_PART.sub("", value):
            raise ConfigurationError(f"Invalid duration '{text}'")
        seconds = sum(float(num) * _DURATION_UNITS[unit] for num, unit in _DURATION_PART.findall(value))

    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive, got '{text}'")
    return seconds


def parse_at(text: str, default_tz: tzinfo = dt_timezone.utc) -> datetime:
    """Parse an absolute point in time; naive values are read in *default_tz*."""
    value = str(text).strip()
    parsed: Optional[datetime] = None

    # Trailing zone name, e.g. "2030-01-01 12:00:00 Europe/Stockholm"
    head, _, tail = value.rpartition(" ")
    zone = _resolve_timezone(tail) if head else None
    if zone is not None:
        value = head

    for fmt in _AT_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise ConfigurationError(f"Invalid 'at' time '{text}'") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone or default_tz)
    return parsed


def _cron_day_of_week(field: str) -> str:
    # crontab counts Sunday as 0 (and 7); APScheduler starts the week on Monday
    return re.sub(r"(?<![/\d])(\d+)", lambda m: _DOW_NAMES[int(m.group(1)) % 7], field)


def parse_cron(expression: str, default_tz: Any = "UTC") -> CronTrigger:
    """Build a CronTrigger from a crontab line.

    Accepts five fields, or six with a leading seconds field, optionally
    followed by a timezone name (``"* * * * * UTC"``).
    """
    parts = str(expression).split()
    tz: Any = default_tz
    if len(parts) in (6, 7):
        zone = _resolve_timezone(parts[-1])
        if zone is not None:
            tz = zone
            parts = parts[:-1]

    if len(parts) == 5:
        second = "0"
    elif len(parts) == 6:
        second, parts = parts[0], parts[1:]
    else:
        raise ConfigurationError(
            f"Invalid cron expression '{expression}': expected 5 fields "
            "(minute hour day month day_of_week), optionally with seconds and timezone"
        )

    if not croniter.is_valid(" ".join(parts)):
        raise ConfigurationError(f"Invalid cron expression: {expression}")

    minute, hour, day, month, day_of_week = parts
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_cron_day_of_week(day_of_week),
            timezone=tz,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression '{expression}': {e}") from e


class Scheduler:
    """Async task scheduler wrapper around APScheduler."""

    def __init__(self, timezone: str = "UTC"):
        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,  # seconds
        }

        self.timezone = timezone
        self._tz = _resolve_timezone(timezone) or dt_timezone.utc
        self._scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone=self._tz)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the scheduler."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Scheduler started ({len(self._scheduler.get_jobs())} job(s), timezone {self.timezone})")

    async def stop(self) -> None:
        """Cancel every pending run and stop the scheduler."""
        if self._started:
            self._scheduler.remove_all_jobs()
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    def _add(self, func: Callable, trigger: BaseTrigger, job_id: Optional[str], **kwargs) -> None:
        if job_id:
            kwargs.setdefault("name", job_id)
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            **kwargs,
        )

    def add_interval_job(self, func: Callable, seconds: float, job_id: Optional[str] = None, **kwargs) -> None:
        """Run *func* now, then every *seconds*."""
        if seconds <= 0:
            raise ConfigurationError(f"Interval must be positive, got {seconds}")
        trigger = IntervalTrigger(seconds=seconds, timezone=self._tz)
        self._add(func, trigger, job_id, next_run_time=self._now(), **kwargs)
        logger.info(f"Added interval job: {job_id or func.__name__} (every {seconds}s)")

    def add_cron_job(self, func: Callable, cron_expression: str, job_id: Optional[str] = None, **kwargs) -> None:
        """Add a job that runs on a cron schedule."""
        trigger = parse_cron(cron_expression, default_tz=self._tz)
        self._add(func, trigger, job_id, **kwargs)
        logger.info(f"Added cron job: {job_id or func.__name__} ({cron_expression})")

    def add_every_job(self, func: Callable, duration: str, job_id: Optional[str] = None, **kwargs) -> None:
        """Add a recurring job whose first run is essentially immediate."""
        seconds = parse_duration(duration)
        trigger = IntervalTrigger(seconds=seconds, timezone=self._tz)
        self._add(func, trigger, job_id, next_run_time=self._now() + FIRST_EVERY_DELAY, **kwargs)
        logger.info(f"Added every job: {job_id or func.__name__} ({duration})")

    def add_at_job(self, func: Callable, when: str, job_id: Optional[str] = None, **kwargs) -> None:
        """Add a job that runs once at an absolute time."""
        run_date = parse_at(when, default_tz=self._tz)
        if run_date < self._now():
            logger.warning(f"'at' time {run_date.isoformat()} is in the past; job {job_id} may never run")
        self._add(func, DateTrigger(run_date=run_date), job_id, **kwargs)
        logger.info(f"Added at job: {job_id or func.__name__} ({run_date.isoformat()})")

    def add_in_job(self, func: Callable, delay: str, job_id: Optional[str] = None, **kwargs) -> None:
        """Add a job that runs once after a relative delay."""
        run_date = self._now() + timedelta(seconds=parse_duration(delay))
        self._add(func, DateTrigger(run_date=run_date), job_id, **kwargs)
        logger.info(f"Added in job: {job_id or func.__name__} ({delay})")

    def add_trigger_job(self, func: Callable, trigger: Trigger, job_id: Optional[str] = None, **kwargs) -> None:
        """Schedule *func* according to a validated pipeline trigger."""
        if isinstance(trigger, IntervalSchedule):
            self.add_interval_job(func, trigger.seconds, job_id=job_id, **kwargs)
            return

        if not isinstance(trigger, ScheduleSpec):
            raise ConfigurationError(f"Unsupported trigger: {trigger!r}")

        dispatch: Dict[str, Callable[..., None]] = {
            "cron": self.add_cron_job,
            "every": self.add_every_job,
            "at": self.add_at_job,
            "in": self.add_in_job,
        }
        dispatch[trigger.kind](func, trigger.value, job_id=job_id, **kwargs)

    def remove_job(self, job_id: str) -> None:
        """Remove a job by ID."""
        self._scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def list_jobs(self) -> Dict[str, Any]:
        """List all scheduled jobs."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs
