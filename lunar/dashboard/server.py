"""Dashboard control surface — JSON over WebSocket on an aiohttp server.

Runs alongside the Telegram bot in the same asyncio event loop. Each
WebSocket connection is its own conversation (``web-<id>``) talking to the
agent as the owner, and the conversation is dropped when the socket
closes. The same socket exposes the control operations used by
``lunar context ...``: list sessions, show/clear/pop a log, list/cancel jobs,
and query/add/delete memories.

Client → server messages carry a ``type`` plus fields; replies mirror them
(``get_sessions`` → ``sessions``, ``clear_history`` → ``history_cleared``...).
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

from aiohttp import WSMsgType, web

from lunar.config import settings
from lunar.llm.agent import TurnStatus
from lunar.llm.models import friendly
from lunar.people.models import OWNER

if TYPE_CHECKING:
    from pathlib import Path

    from lunar.runtime import Runtime

logger = logging.getLogger(__name__)

RUNTIME_KEY = web.AppKey("runtime", object)


class Connection:
    """One dashboard client: its conversation key and stop flag."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self.ws = ws
        self.key = f"web-{uuid.uuid4().hex[:8]}"
        self.should_stop = False
        self.task: asyncio.Task | None = None

    @property
    def generating(self) -> bool:
        return self.task is not None and not self.task.done()

    async def send(self, payload: dict[str, Any]) -> None:
        if not self.ws.closed:
            await self.ws.send_json(payload)

    async def error(self, message: str) -> None:
        await self.send({"type": "error", "message": message})


def _runtime(request: web.Request) -> Runtime:
    return request.app[RUNTIME_KEY]


# -- Status --------------------------------------------------------------------


def _status(runtime: Runtime) -> dict[str, Any]:
    return {
        "type": "status",
        "agent": "online",
        "model": friendly(runtime.models.get_chat_model()),
        "tools": runtime.tools.tool_names,
        "toolCategories": {
            category: [t.name for t in defs]
            for category, defs in runtime.tools.get_tools_by_category().items()
        },
        "channels": runtime.router.list_channels(),
        "sessions": len(runtime.sessions.keys()),
        "configured": bool(settings.anthropic_api_key),
    }


# -- Chat ----------------------------------------------------------------------


async def _chat(runtime: Runtime, conn: Connection, text: str) -> None:
    """Run one agent turn, streaming progress events to the client."""

    async def on_text(content: str) -> None:
        await conn.send({"type": "text", "content": content})

    async def on_tool_start(name: str, args: dict[str, Any]) -> None:
        await conn.send({"type": "tool_start", "name": name, "args": json.dumps(args)})

    async def on_tool_result(name: str, result: str) -> None:
        await conn.send({"type": "tool_result", "name": name, "result": result})

    try:
        result = await runtime.agent.run(
            conn.key,
            text,
            person_id=OWNER,
            channel="dashboard",
            is_stopped=lambda: conn.should_stop,
            on_text=on_text,
            on_tool_start=on_tool_start,
            on_tool_result=on_tool_result,
        )
    except Exception as exc:
        logger.exception("Dashboard chat failed for %s", conn.key)
        await conn.error(str(exc))
        return

    if result.status in (TurnStatus.FAILED, TurnStatus.NOT_CONFIGURED, TurnStatus.BUSY):
        await conn.error(result.text)
        return
    await conn.send({"type": "done", "status": result.status.value, "rounds": result.rounds})


# -- Control operations --------------------------------------------------------


async def _dispatch(runtime: Runtime, conn: Connection, msg: dict[str, Any]) -> None:
    """Handle one client message."""
    kind = msg.get("type")

    if kind == "get_status":
        await conn.send(_status(runtime))

    elif kind == "chat":
        text = str(msg.get("message") or "").strip()
        if not text:
            await conn.error("Empty message")
            return
        if conn.generating:
            await conn.error("Already generating")
            return
        conn.should_stop = False
        conn.task = asyncio.create_task(_chat(runtime, conn, text))

    elif kind == "stop":
        conn.should_stop = True
        await conn.send({"type": "stopped"})

    elif kind == "get_sessions":
        await conn.send({"type": "sessions", "sessions": runtime.sessions.keys()})

    elif kind in ("get_history", "clear_history", "pop_history"):
        chat_id = str(msg.get("chatId") or "")
        session = runtime.sessions.get(chat_id)
        if session is None:
            await conn.error(f"Session {chat_id} not found")
            return
        if kind == "get_history":
            messages = [m.to_dict() for m in session.all()]
            await conn.send({"type": "history", "chatId": chat_id, "messages": messages})
        elif kind == "clear_history":
            removed = session.reset()
            await conn.send({"type": "history_cleared", "chatId": chat_id, "removed": removed})
        else:
            popped = session.remove_last()
            await conn.send({
                "type": "history_popped",
                "chatId": chat_id,
                "message": popped.to_dict() if popped else None,
            })

    elif kind == "list_jobs":
        jobs = await runtime.scheduler.list()
        await conn.send({"type": "jobs", "jobs": [j.to_record() for j in jobs]})

    elif kind == "cancel_job":
        job_id = str(msg.get("id") or "")
        cancelled = await runtime.scheduler.cancel(job_id)
        await conn.send({"type": "job_cancelled", "id": job_id, "cancelled": cancelled})

    elif kind == "get_memories":
        memories = await runtime.memory.list(msg.get("personId"), int(msg.get("limit") or 20))
        await conn.send({"type": "memories", "memories": [m.model_dump() for m in memories]})

    elif kind == "add_memory":
        content = str(msg.get("content") or "").strip()
        if not content:
            await conn.error("Empty memory")
            return
        memory = await runtime.memory.add(content, str(msg.get("personId") or OWNER))
        await conn.send({"type": "memory_added", "memory": memory.model_dump()})

    elif kind == "delete_memory":
        memory_id = str(msg.get("id") or "")
        deleted = await runtime.memory.delete(memory_id)
        await conn.send({"type": "memory_deleted", "id": memory_id, "deleted": deleted})

    elif kind == "get_people":
        people = await runtime.people.list()
        await conn.send({"type": "people", "people": [p.model_dump() for p in people]})

    else:
        await conn.error(f"Unknown message type: {kind}")


async def _handle_ws(request: web.Request) -> web.WebSocketResponse:
    """GET /ws — one dashboard client."""
    runtime = _runtime(request)
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    conn = Connection(ws)
    logger.info("Dashboard client connected (%s)", conn.key)

    await conn.send({"type": "welcome", "message": "Connected to Lunar", "chatId": conn.key})
    await conn.send(_status(runtime))

    async for raw in ws:
        if raw.type == WSMsgType.ERROR:
            logger.error("WebSocket error: %s", ws.exception())
            break
        if raw.type != WSMsgType.TEXT:
            continue
        try:
            msg = json.loads(raw.data)
        except json.JSONDecodeError:
            await conn.error("Invalid JSON")
            continue
        if not isinstance(msg, dict):
            await conn.error("Invalid JSON")
            continue
        try:
            await _dispatch(runtime, conn, msg)
        except Exception as exc:
            logger.exception("Dashboard request failed: %s", msg.get("type"))
            await conn.error(str(exc))

    conn.should_stop = True
    # The conversation lives as long as its socket, plus any turn still unwinding.
    if conn.generating:
        conn.task.add_done_callback(lambda _: runtime.sessions.discard(conn.key))
    else:
        runtime.sessions.discard(conn.key)
    logger.info("Dashboard client disconnected (%s)", conn.key)
    return ws


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


def create_web_app(runtime: Runtime, static_dir: Path | None = None) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[RUNTIME_KEY] = runtime
    app.router.add_get("/health", _health)
    app.router.add_get("/ws", _handle_ws)
    if static_dir is not None and static_dir.is_dir():
        app.router.add_static("/", static_dir, show_index=False)
        logger.info("Serving dashboard assets from %s", static_dir)
    return app


class DashboardServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        runtime: Runtime,
        host: str | None = None,
        port: int | None = None,
        static_dir: Path | None = None,
    ) -> None:
        self.runtime = runtime
        self.host = host or settings.dashboard_host
        self.port = port or settings.dashboard_port
        self.static_dir = static_dir
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        app = create_web_app(self.runtime, self.static_dir)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Dashboard listening on ws://%s:%d/ws", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Dashboard stopped")
