"""JobStore — persistence for scheduled jobs in the shared document store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lunar.scheduler.models import ScheduledJob

if TYPE_CHECKING:
    from lunar.db import DocumentStore

logger = logging.getLogger(__name__)

JOBS_KEY = "jobs"


class JobStore:
    """Reads and writes the ``"jobs"`` document as a list of job records."""

    def __init__(self, db: DocumentStore) -> None:
        self._db = db

    async def list_jobs(self) -> list[ScheduledJob]:
        jobs = []
        for record in await self._db.get(JOBS_KEY, []):
            try:
                jobs.append(ScheduledJob.from_record(record))
            except (KeyError, ValueError):
                logger.warning("Skipping unreadable job record: %s", record)
        return jobs

    async def get_job(self, job_id: str) -> ScheduledJob | None:
        for job in await self.list_jobs():
            if job.id == job_id:
                return job
        return None

    async def add_job(self, job: ScheduledJob) -> None:
        def _append(records: list[dict]) -> list[dict]:
            return [*records, job.to_record()]

        await self._db.update(JOBS_KEY, _append, [])

    async def remove_job(self, job_id: str) -> bool:
        """Delete a job record. Returns True if it was present."""
        removed = False

        def _remove(records: list[dict]) -> list[dict]:
            nonlocal removed
            kept = [r for r in records if r.get("id") != job_id]
            removed = len(kept) != len(records)
            return kept

        await self._db.update(JOBS_KEY, _remove, [])
        return removed

    async def remove_jobs(self, job_ids: set[str]) -> int:
        """Delete the records whose id is in *job_ids*. Returns how many went.

        Records outside the set stay as stored, unreadable ones included.
        """
        removed = 0

        def _remove(records: list[dict]) -> list[dict]:
            nonlocal removed
            kept = [r for r in records if r.get("id") not in job_ids]
            removed = len(records) - len(kept)
            return kept

        await self._db.update(JOBS_KEY, _remove, [])
        return removed
