"""Scheduler tools — create, list, and cancel scheduled tool invocations."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import Field

from lunar.scheduler.models import kind_for, parse_trigger
from lunar.tools.base import ToolParams, ToolResult
from lunar.tools.registry import registry

if TYPE_CHECKING:
    from lunar.scheduler.engine import Scheduler

logger = logging.getLogger(__name__)

_CATEGORY = "scheduler"

# Set by init_scheduler_tools() during startup.
_scheduler: Scheduler | None = None


def init_scheduler_tools(scheduler: Scheduler) -> None:
    """Wire the scheduler into the tool functions.

    Called once during startup, after the scheduler is constructed.
    """
    global _scheduler  # noqa: PLW0603
    _scheduler = scheduler


def _get_scheduler() -> Scheduler:
    if _scheduler is None:
        msg = "Scheduler not initialised — call init_scheduler_tools() first"
        raise RuntimeError(msg)
    return _scheduler


# -- schedule_task -------------------------------------------------------------


class ScheduleTaskParams(ToolParams):
    tool_name: str = Field(
        description='The name of the tool to execute (e.g. "send_message")'
    )
    tool_args: str = Field(description="JSON string of arguments for the tool")
    execution_time: str = Field(
        description=(
            "ISO 8601 datetime for one-time execution (e.g. '2025-06-01T15:00:00+02:00'), "
            "OR a cron expression (e.g. '0 9 * * *' for daily at 9am)"
        )
    )
    recurrence: str | None = Field(
        default=None,
        description='Human-readable description of the recurrence (e.g. "daily")',
    )


@registry.tool(
    name="schedule_task",
    description=(
        "Schedule a tool to run at a specific time or on a recurring basis. "
        "Use this for reminders, daily updates, or delayed actions."
    ),
    category=_CATEGORY,
    params_model=ScheduleTaskParams,
)
async def schedule_task(
    tool_name: str,
    tool_args: str,
    execution_time: str,
    recurrence: str | None = None,
) -> ToolResult:
    scheduler = _get_scheduler()

    try:
        parsed_args = json.loads(tool_args) if tool_args.strip() else {}
    except json.JSONDecodeError:
        return ToolResult(error="tool_args must be a valid JSON string.")
    if not isinstance(parsed_args, dict):
        return ToolResult(error="tool_args must be a JSON object.")

    try:
        trigger = parse_trigger(execution_time, scheduler.timezone)
    except ValueError:
        return ToolResult(
            error=(
                f'Invalid date format "{execution_time}". Use ISO 8601 '
                "(YYYY-MM-DDTHH:MM:SS) or a valid cron expression."
            )
        )

    try:
        job_id = await scheduler.schedule(kind_for(trigger), trigger, tool_name, parsed_args)
    except ValueError as exc:
        return ToolResult(error=f"Failed to schedule task: {exc}")

    if recurrence:
        logger.info("Job %s recurrence: %s", job_id, recurrence)
    return ToolResult(
        data=(
            f"Task scheduled successfully! ID: {job_id}. "
            f"Will run {tool_name} at {execution_time}."
        )
    )


# -- list_scheduled_tasks ------------------------------------------------------


@registry.tool(
    name="list_scheduled_tasks",
    description="List all currently scheduled tasks.",
    category=_CATEGORY,
)
async def list_scheduled_tasks() -> ToolResult:
    jobs = await _get_scheduler().list()
    if not jobs:
        return ToolResult(data="No scheduled tasks.")

    lines = [
        f"ID: {j.id} | Tool: {j.tool_name} | When: {j.trigger} | Type: {j.to_record()['type']}"
        for j in jobs
    ]
    return ToolResult(data="\n".join(lines))


# -- cancel_scheduled_task -----------------------------------------------------


class CancelScheduledTaskParams(ToolParams):
    id: str = Field(description="The ID of the task to cancel")


@registry.tool(
    name="cancel_scheduled_task",
    description="Cancel a scheduled task by ID.",
    category=_CATEGORY,
    params_model=CancelScheduledTaskParams,
)
async def cancel_scheduled_task(id: str) -> ToolResult:  # noqa: A002
    if await _get_scheduler().cancel(id):
        return ToolResult(data=f"Task {id} cancelled.")
    return ToolResult(data=f"Task {id} not found.")
