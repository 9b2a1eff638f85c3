"""Tests for the lunar command-line interface."""

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

import lunar.runtime
from lunar.cli import build_parser, main
from lunar.llm.messages import ASSISTANT, Message, ToolCall


@pytest.fixture(autouse=True)
def _temp_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Route the database to a temp file for test isolation."""
    monkeypatch.setattr("lunar.config.settings.database_path", tmp_path / "test.db")


class TestParser:
    def test_memories_list_options(self):
        args = build_parser().parse_args(["memories", "list", "--person", "p1", "-n", "5"])
        assert args.command == "memories"
        assert args.action == "list"
        assert args.person == "p1"
        assert args.limit == 5

    def test_memories_add_defaults_to_owner(self):
        args = build_parser().parse_args(["memories", "add", "likes tea"])
        assert args.person == "owner"

    def test_context_requires_chat_id(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["context", "show"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestLocalCommands:
    def test_memories_add_and_list(self, capsys):
        assert main(["memories", "add", "Prefers tea", "--person", "p1"]) == 0
        assert main(["memories", "list", "--person", "p1"]) == 0

        out = capsys.readouterr().out
        assert "Added memory" in out
        assert "[p1]  Prefers tea" in out

    def test_memories_delete_missing(self, capsys):
        assert main(["memories", "delete", "nope"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_people_add_and_list(self, capsys):
        argv = ["people", "add", "Alice", "friend", "--address", "111", "--acl", "owner,*"]
        assert main(argv) == 0
        assert main(["people", "list"]) == 0

        out = capsys.readouterr().out
        assert "Alice (friend) [111]" in out
        assert "acl=owner,*" in out

    def test_schedule_list_empty(self, capsys):
        assert main(["schedule", "list"]) == 0
        assert "No scheduled tasks." in capsys.readouterr().out

    def test_schedule_cancel_missing(self):
        assert main(["schedule", "cancel", "nope"]) == 1


class TestDaemonCommands:
    def test_unreachable_daemon(self, monkeypatch, capsys):
        monkeypatch.setattr("lunar.config.settings.dashboard_port", 1)
        assert main(["context", "list"]) == 1
        assert "Could not reach the daemon" in capsys.readouterr().err


class TestChat:
    def test_chat_leaves_scheduling_to_the_daemon(self, tmp_path, monkeypatch, capsys):
        built: list[lunar.runtime.Runtime] = []
        running_during_turn: list[bool] = []
        schedule = ToolCall(
            id="c1",
            name="schedule_task",
            arguments=json.dumps(
                {"tool_name": "calculator", "tool_args": "{}", "execution_time": "0 9 * * *"}
            ),
        )
        replies = [
            Message(role=ASSISTANT, content=None, tool_calls=[schedule]),
            Message(role=ASSISTANT, content="Scheduled."),
        ]

        class Backend:
            async def generate(self, messages: list[Message], tools: list[dict[str, Any]]):
                running_during_turn.append(built[0].scheduler.running)
                return replies.pop(0)

        real_create_runtime = lunar.runtime.create_runtime

        def create_runtime() -> lunar.runtime.Runtime:
            rt = real_create_runtime(
                db_path=tmp_path / "chat.db", backend_factory=Backend, timezone="UTC"
            )
            built.append(rt)
            return rt

        lines = iter(["remind me daily", "/exit"])
        monkeypatch.setattr("lunar.runtime.create_runtime", create_runtime)
        monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))

        assert main(["chat"]) == 0

        assert "lunar> Scheduled." in capsys.readouterr().out
        assert running_during_turn == [False, False]
        scheduler = built[0].scheduler
        assert not scheduler.running
        (job,) = asyncio.run(scheduler.list())
        assert job.tool_name == "calculator"
        assert not scheduler.is_armed(job.id)
