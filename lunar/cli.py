"""Command-line interface.

Usage examples:
    lunar run                                   # daemon: scheduler, dashboard, Telegram
    lunar chat                                  # interactive chat as the owner
    lunar memories list --person <id>
    lunar memories add "Prefers tea over coffee" --person owner
    lunar people add Alice friend --address 123456 --acl owner,*
    lunar schedule list
    lunar schedule cancel <job-id>
    lunar context list                          # talks to the running daemon
    lunar context show web-1a2b3c4d
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import aiohttp

from lunar.config import settings
from lunar.people.models import OWNER

CHAT_KEY = "cli"


class DaemonError(Exception):
    """The running daemon could not be reached or rejected the request."""


# -- Local commands ------------------------------------------------------------


async def _memories(args: argparse.Namespace) -> int:
    from lunar.runtime import create_runtime

    runtime = create_runtime()
    if args.action == "list":
        memories = await runtime.memory.list(args.person, args.limit)
        if not memories:
            print("No memories found.")
        for m in memories:
            print(f"{m.id}  [{m.person_id}]  {m.content}")
    elif args.action == "add":
        memory = await runtime.memory.add(args.content, args.person or OWNER)
        print(f"Added memory {memory.id}")
    elif args.action == "delete":
        if not await runtime.memory.delete(args.id):
            print(f"Memory {args.id} not found.", file=sys.stderr)
            return 1
        print(f"Deleted memory {args.id}")
    return 0


async def _people(args: argparse.Namespace) -> int:
    from lunar.runtime import create_runtime

    runtime = create_runtime()
    if args.action == "list":
        people = await runtime.people.list()
        if not people:
            print("No people configured.")
        for p in people:
            address = f" [{p.channel_address}]" if p.channel_address else ""
            print(f"{p.id}  {p.name} ({p.relation}){address}  acl={','.join(p.acl)}")
    elif args.action == "add":
        acl = [a.strip() for a in args.acl.split(",") if a.strip()] if args.acl else None
        person = await runtime.people.add(
            args.name,
            args.relation,
            channel_address=args.address,
            notes=args.notes,
            memory_accessible_by=acl,
        )
        print(f"Added {person.name} ({person.id})")
    elif args.action == "remove":
        if not await runtime.people.delete(args.id):
            print(f"Person {args.id} not found.", file=sys.stderr)
            return 1
        print(f"Removed {args.id}")
    return 0


async def _schedule(args: argparse.Namespace) -> int:
    from lunar.runtime import create_runtime

    runtime = create_runtime()
    if args.action == "list":
        jobs = await runtime.scheduler.list()
        if not jobs:
            print("No scheduled tasks.")
        for j in jobs:
            record = j.to_record()
            print(
                f"ID: {j.id} | Tool: {j.tool_name} | "
                f"When: {record['value']} | Type: {record['type']}"
            )
    elif args.action == "cancel":
        if not await runtime.scheduler.cancel(args.id):
            print(f"Task {args.id} not found.", file=sys.stderr)
            return 1
        print(f"Task {args.id} cancelled.")
    return 0


async def _chat(args: argparse.Namespace) -> int:
    from lunar.runtime import create_runtime

    # The daemon owns the armed jobs; tasks scheduled here are only persisted.
    runtime = create_runtime()

    async def on_tool_start(name: str, tool_args: dict[str, Any]) -> None:
        print(f"  [tool] {name} {json.dumps(tool_args)}")

    print("Lunar chat. /clear resets, /undo drops the last message, /exit quits.")
    while True:
        try:
            line = await asyncio.to_thread(input, "you> ")
        except (EOFError, KeyboardInterrupt):
            break
        line = line.strip()
        if not line:
            continue
        if line in ("/exit", "/quit"):
            break
        session = runtime.sessions.get_or_create(CHAT_KEY)
        if line == "/clear":
            print(f"Cleared {session.reset()} messages.")
            continue
        if line == "/undo":
            removed = session.remove_last()
            print("Nothing to undo." if removed is None else f"Removed {removed.role} message.")
            continue

        result = await runtime.agent.run(
            CHAT_KEY, line, person_id=OWNER, channel="cli", on_tool_start=on_tool_start
        )
        if result.has_reply:
            print(f"lunar> {result.text}")
    return 0


# -- Daemon commands -----------------------------------------------------------


async def request_daemon(
    payload: dict[str, Any], expect: str, timeout: float = 5.0
) -> dict[str, Any]:
    """Send one control message over the dashboard socket and wait for *expect*."""
    url = f"ws://{settings.dashboard_host}:{settings.dashboard_port}/ws"
    try:
        async with asyncio.timeout(timeout), aiohttp.ClientSession() as session:
            async with session.ws_connect(url) as ws:
                await ws.send_json(payload)
                async for msg in ws:
                    if msg.type != aiohttp.WSMsgType.TEXT:
                        continue
                    data = json.loads(msg.data)
                    if data.get("type") == "error":
                        raise DaemonError(data.get("message", "unknown error"))
                    if data.get("type") == expect:
                        return data
    except (aiohttp.ClientError, TimeoutError) as exc:
        msg = f"Could not reach the daemon at {url}. Is it running? ({exc})"
        raise DaemonError(msg) from exc
    msg = "Connection closed before a reply arrived"
    raise DaemonError(msg)


async def _context(args: argparse.Namespace) -> int:
    if args.action == "list":
        data = await request_daemon({"type": "get_sessions"}, "sessions")
        if not data["sessions"]:
            print("No active sessions found.")
        for key in data["sessions"]:
            print(f"- {key}")
    elif args.action == "show":
        data = await request_daemon({"type": "get_history", "chatId": args.chat_id}, "history")
        print(f"History for {data['chatId']}:")
        for idx, m in enumerate(data["messages"], start=1):
            content = (m.get("content") or "[No Content]").replace("\n", " ")
            if len(content) > 100:
                content = content[:100] + "..."
            print(f"{idx}. {m['role'].upper()}: {content}")
            if m.get("tool_calls"):
                print(f"   [Tool Calls: {', '.join(c['name'] for c in m['tool_calls'])}]")
    elif args.action == "clear":
        payload = {"type": "clear_history", "chatId": args.chat_id}
        data = await request_daemon(payload, "history_cleared")
        print(f"History cleared for {args.chat_id} ({data['removed']} messages)")
    elif args.action == "pop":
        payload = {"type": "pop_history", "chatId": args.chat_id}
        data = await request_daemon(payload, "history_popped")
        if data["message"] is None:
            print(f"History for {args.chat_id} is already empty")
        else:
            print(f"Last message removed for {args.chat_id}")
    return 0


# -- Parser --------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lunar", description="Lunar conversational agent")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the daemon (scheduler, dashboard, Telegram)")
    sub.add_parser("chat", help="Interactive chat in the terminal")

    memories = sub.add_parser("memories", help="Inspect and edit memories")
    mem_sub = memories.add_subparsers(dest="action", required=True)
    mem_list = mem_sub.add_parser("list")
    mem_list.add_argument("--person", "-p", help="Only this person's memories")
    mem_list.add_argument("--limit", "-n", type=int, default=20)
    mem_add = mem_sub.add_parser("add")
    mem_add.add_argument("content")
    mem_add.add_argument("--person", "-p", default=OWNER)
    mem_delete = mem_sub.add_parser("delete")
    mem_delete.add_argument("id")

    people = sub.add_parser("people", help="Manage the person directory")
    people_sub = people.add_subparsers(dest="action", required=True)
    people_sub.add_parser("list")
    people_add = people_sub.add_parser("add")
    people_add.add_argument("name")
    people_add.add_argument("relation")
    people_add.add_argument("--address", help="Channel address (e.g. Telegram chat id)")
    people_add.add_argument("--notes")
    people_add.add_argument("--acl", help="Comma-separated memory readers, e.g. 'owner,*'")
    people_remove = people_sub.add_parser("remove")
    people_remove.add_argument("id")

    schedule = sub.add_parser("schedule", help="List or cancel scheduled tasks")
    sched_sub = schedule.add_subparsers(dest="action", required=True)
    sched_sub.add_parser("list")
    sched_cancel = sched_sub.add_parser("cancel")
    sched_cancel.add_argument("id")

    context = sub.add_parser("context", help="Inspect live conversations in the daemon")
    ctx_sub = context.add_subparsers(dest="action", required=True)
    ctx_sub.add_parser("list")
    for name in ("show", "clear", "pop"):
        ctx_cmd = ctx_sub.add_parser(name)
        ctx_cmd.add_argument("chat_id")

    return parser


_HANDLERS = {
    "chat": _chat,
    "memories": _memories,
    "people": _people,
    "schedule": _schedule,
    "context": _context,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "run":
        from lunar.main import main as run_daemon

        run_daemon()
        return 0

    from lunar.main import configure_logging

    configure_logging("WARNING")
    try:
        return asyncio.run(_HANDLERS[args.command](args))
    except DaemonError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
