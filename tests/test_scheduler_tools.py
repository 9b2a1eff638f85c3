"""Tests for scheduler tools — schedule, list, cancel."""

import json
from datetime import UTC, datetime, timedelta

import pytest

from lunar.db import DocumentStore
from lunar.scheduler.engine import Scheduler
from lunar.scheduler.store import JobStore
from lunar.tools.registry import registry
from lunar.tools.scheduler_tools import (
    cancel_scheduled_task,
    init_scheduler_tools,
    list_scheduled_tasks,
    schedule_task,
)


@pytest.fixture
async def engine(db: DocumentStore):
    eng = Scheduler(JobStore(db), timezone="America/Chicago")
    await eng.initialize(registry.get)
    init_scheduler_tools(eng)
    yield eng
    await eng.stop()


def _in_an_hour() -> str:
    return (datetime.now(UTC) + timedelta(hours=1)).isoformat()


# -- schedule_task -------------------------------------------------------------


async def test_schedule_one_shot(engine: Scheduler) -> None:
    result = await schedule_task(
        tool_name="send_message",
        tool_args=json.dumps({"to": "Alice", "message": "hi"}),
        execution_time=_in_an_hour(),
    )

    assert result.success
    assert result.data.startswith("Task scheduled successfully! ID: ")
    (job,) = await engine.list()
    assert job.is_one_shot
    assert job.tool_args == {"to": "Alice", "message": "hi"}
    assert engine.is_armed(job.id)


async def test_schedule_cron(engine: Scheduler) -> None:
    result = await schedule_task(
        tool_name="get_current_datetime",
        tool_args="{}",
        execution_time="0 9 * * *",
        recurrence="daily at 9",
    )

    assert result.success
    (job,) = await engine.list()
    assert not job.is_one_shot
    assert str(job.trigger) == "0 9 * * *"


async def test_schedule_empty_args(engine: Scheduler) -> None:
    result = await schedule_task(tool_name="x", tool_args="", execution_time="0 9 * * *")
    assert result.success
    assert (await engine.list())[0].tool_args == {}


async def test_schedule_invalid_json(engine: Scheduler) -> None:
    result = await schedule_task(tool_name="x", tool_args="{nope", execution_time="0 9 * * *")
    assert result.error == "tool_args must be a valid JSON string."
    assert await engine.list() == []


async def test_schedule_non_object_args(engine: Scheduler) -> None:
    result = await schedule_task(tool_name="x", tool_args="[1]", execution_time="0 9 * * *")
    assert not result.success


async def test_schedule_invalid_date(engine: Scheduler) -> None:
    result = await schedule_task(tool_name="x", tool_args="{}", execution_time="next-tuesday")
    assert result.error.startswith('Invalid date format "next-tuesday"')


async def test_schedule_past_date(engine: Scheduler) -> None:
    result = await schedule_task(
        tool_name="x", tool_args="{}", execution_time="2001-01-01T00:00:00Z"
    )
    assert result.error.startswith("Failed to schedule task:")
    assert await engine.list() == []


async def test_schedule_bad_cron(engine: Scheduler) -> None:
    result = await schedule_task(tool_name="x", tool_args="{}", execution_time="every day please")
    assert result.error.startswith("Failed to schedule task:")


# -- list / cancel -------------------------------------------------------------


async def test_list_empty(engine: Scheduler) -> None:
    assert (await list_scheduled_tasks()).data == "No scheduled tasks."


async def test_list_jobs(engine: Scheduler) -> None:
    await schedule_task(tool_name="calculator", tool_args="{}", execution_time="*/5 * * * *")

    text = (await list_scheduled_tasks()).data
    assert "Tool: calculator" in text
    assert "When: */5 * * * *" in text
    assert "Type: cron" in text


async def test_cancel(engine: Scheduler) -> None:
    await schedule_task(tool_name="x", tool_args="{}", execution_time="0 9 * * *")
    (job,) = await engine.list()

    assert (await cancel_scheduled_task(id=job.id)).data == f"Task {job.id} cancelled."
    assert await engine.list() == []
    assert (await cancel_scheduled_task(id=job.id)).data == f"Task {job.id} not found."
