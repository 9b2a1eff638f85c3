"""Scheduled jobs — models, persistence and the APScheduler engine."""

from lunar.scheduler.engine import Scheduler
from lunar.scheduler.models import At, Cron, JobKind, ScheduledJob, parse_trigger
from lunar.scheduler.store import JobStore

__all__ = [
    "At",
    "Cron",
    "JobKind",
    "JobStore",
    "ScheduledJob",
    "Scheduler",
    "parse_trigger",
]
