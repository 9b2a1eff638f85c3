"""Scheduler — APScheduler lifecycle and tool-invocation jobs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from lunar.config import settings
from lunar.scheduler.models import At, Cron, JobKind, ScheduledJob, Trigger, make_job_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from lunar.scheduler.store import JobStore
    from lunar.tools.registry import ToolDef

    ToolResolver = Callable[[str], ToolDef | None]

logger = logging.getLogger(__name__)


class Scheduler:
    """Persists jobs and arms them on an ``AsyncIOScheduler``.

    The live APScheduler instance is the map of armed triggers; it belongs
    to this object, so each test can build its own.

    Args:
        store: JobStore for persistence.
        timezone: IANA timezone string (default from settings).
    """

    def __init__(self, store: JobStore, timezone: str | None = None) -> None:
        self._store = store
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._resolve: ToolResolver | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def timezone(self) -> str:
        return self._timezone

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self, resolve_tool: ToolResolver) -> None:
        """Load persisted jobs, drop past-due one-shots, arm the rest and start."""
        self._resolve = resolve_tool
        if self._running:
            return

        jobs = await self._store.list_jobs()
        now = datetime.now(ZoneInfo(self._timezone))
        valid: list[ScheduledJob] = []
        expired: set[str] = set()
        for job in jobs:
            if isinstance(job.trigger, At) and job.trigger.when < now:
                logger.info("Skipping expired job %s (%s)", job.id, job.tool_name)
                expired.add(job.id)
                continue
            valid.append(job)

        if expired:
            await self._store.remove_jobs(expired)

        for job in valid:
            self._arm(job)

        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started with %d job(s) (tz=%s)", len(valid), self._timezone)

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    # -- Job management --------------------------------------------------------

    async def schedule(
        self,
        kind: JobKind | str,
        trigger: Trigger,
        tool_name: str,
        tool_args: dict[str, Any] | None = None,
    ) -> str:
        """Persist a job and arm it. Returns the new job id.

        Raises ValueError for a one-shot time already in the past, a malformed
        cron pattern, or a kind that does not match the trigger.
        """
        job = ScheduledJob(
            id=make_job_id(),
            kind=JobKind(kind),
            trigger=trigger,
            tool_name=tool_name,
            tool_args=dict(tool_args or {}),
        )
        aps_trigger = self._build_trigger(job.trigger)
        armed = job.trigger
        if isinstance(armed, At) and armed.when <= datetime.now(armed.when.tzinfo):
            msg = f"Execution time {job.trigger} is in the past"
            raise ValueError(msg)

        await self._store.add_job(job)
        if self._running:
            self._add_aps_job(job, aps_trigger)
        logger.info("Scheduled new job %s: %s @ %s", job.id, tool_name, job.trigger)
        return job.id

    async def cancel(self, job_id: str) -> bool:
        """Disarm and forget a job. True if either step removed something."""
        disarmed = False
        try:
            self._scheduler.remove_job(job_id)
            disarmed = True
            logger.info("Cancelled armed job %s", job_id)
        except JobLookupError:
            logger.debug("Job %s not armed in this process", job_id)

        removed = await self._store.remove_job(job_id)
        if removed:
            logger.info("Removed job %s from storage", job_id)
        return disarmed or removed

    async def list(self) -> list[ScheduledJob]:
        return await self._store.list_jobs()

    def is_armed(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None

    # -- Internal --------------------------------------------------------------

    def _arm(self, job: ScheduledJob) -> None:
        try:
            self._add_aps_job(job, self._build_trigger(job.trigger))
        except ValueError:
            logger.exception("Could not arm job %s (%s)", job.id, job.trigger)

    def _add_aps_job(self, job: ScheduledJob, aps_trigger: CronTrigger | DateTrigger) -> None:
        self._scheduler.add_job(
            self._fire,
            trigger=aps_trigger,
            id=job.id,
            name=job.tool_name,
            args=[job],
            misfire_grace_time=None,
            replace_existing=True,
        )

    async def _fire(self, job: ScheduledJob) -> None:
        """Callback invoked by APScheduler."""
        logger.info("Executing scheduled job %s: %s", job.id, job.tool_name)
        try:
            tool = self._resolve(job.tool_name) if self._resolve else None
            if tool is None:
                logger.error("Job %s failed: tool %s not found", job.id, job.tool_name)
                return
            try:
                result = await tool.run(job.tool_args)
                logger.info(
                    "Job %s executed. Result: %s", job.id, result.to_content()[:100]
                )
            except Exception:
                logger.exception("Job %s execution failed", job.id)
        finally:
            if job.is_one_shot:
                await self._store.remove_job(job.id)

    def _build_trigger(self, trigger: Trigger) -> CronTrigger | DateTrigger:
        """Convert a trigger variant into an APScheduler trigger."""
        if isinstance(trigger, Cron):
            return CronTrigger.from_crontab(trigger.pattern, timezone=self._timezone)
        return DateTrigger(run_date=trigger.when, timezone=self._timezone)
