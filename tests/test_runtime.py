"""Tests for runtime wiring."""

from pathlib import Path

from lunar.runtime import create_runtime
from lunar.tools.memory_tools import remember_this
from lunar.tools.scheduler_tools import list_scheduled_tasks


async def test_components_share_one_database(tmp_path: Path) -> None:
    runtime = create_runtime(db_path=tmp_path / "test.db")

    assert runtime.db.path == tmp_path / "test.db"
    person = await runtime.people.add("Alice", "friend")
    await runtime.memory.add("likes tea", person.id)
    assert len(await runtime.memory.accessible_to(person.id, "owner")) == 1


async def test_tools_are_wired_to_runtime(tmp_path: Path) -> None:
    runtime = create_runtime(db_path=tmp_path / "test.db")

    await remember_this(content="wired")
    assert [m.content for m in await runtime.memory.all()] == ["wired"]
    assert (await list_scheduled_tasks()).data == "No scheduled tasks."


async def test_start_and_stop(tmp_path: Path) -> None:
    runtime = create_runtime(db_path=tmp_path / "test.db", timezone="UTC")
    await runtime.start()
    assert runtime.scheduler.running
    await runtime.stop()
    assert not runtime.scheduler.running


def test_catalogue_contains_builtin_tools(tmp_path: Path) -> None:
    runtime = create_runtime(db_path=tmp_path / "test.db")
    assert {
        "schedule_task",
        "list_scheduled_tasks",
        "cancel_scheduled_task",
        "remember_this",
        "recall",
        "forget_memory",
        "send_message",
        "get_current_datetime",
        "calculator",
    } <= set(runtime.tools.tool_names)
