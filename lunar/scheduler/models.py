"""ScheduledJob data model and trigger variants."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo


class JobKind(StrEnum):
    RECURRING = "recurring"
    ONE_SHOT = "one_shot"


@dataclass(frozen=True)
class Cron:
    """Recurring trigger: a five-field crontab pattern."""

    pattern: str

    def __str__(self) -> str:
        return self.pattern


@dataclass(frozen=True)
class At:
    """One-shot trigger: an absolute, timezone-aware instant."""

    when: datetime

    def __str__(self) -> str:
        return self.when.isoformat()


Trigger = Cron | At


def parse_trigger(text: str, timezone: str = "UTC") -> Trigger:
    """Parse the model-facing string form of a trigger.

    Anything containing a space is a cron pattern; otherwise it must be an
    ISO-8601 timestamp. Naive timestamps are taken in *timezone*.
    Raises ValueError on an unparseable timestamp.
    """
    text = text.strip()
    if " " in text:
        return Cron(text)
    when = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if when.tzinfo is None:
        when = when.replace(tzinfo=ZoneInfo(timezone))
    return At(when)


def kind_for(trigger: Trigger) -> JobKind:
    return JobKind.RECURRING if isinstance(trigger, Cron) else JobKind.ONE_SHOT


def make_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ScheduledJob:
    """A stored invocation of a tool on a trigger.

    Attributes:
        id: Unique identifier (UUID hex).
        kind: ``recurring`` (cron) or ``one_shot`` (absolute time).
        trigger: ``Cron`` or ``At``; must agree with ``kind``.
        tool_name: Registry name of the tool to run.
        tool_args: Arguments passed to the tool when it fires.
        created_at: Epoch milliseconds.
    """

    id: str
    kind: JobKind
    trigger: Trigger
    tool_name: str
    tool_args: dict[str, Any] = field(default_factory=dict)
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def __post_init__(self) -> None:
        self.kind = JobKind(self.kind)
        if kind_for(self.trigger) is not self.kind:
            msg = f"{self.kind} job cannot use trigger {self.trigger!r}"
            raise ValueError(msg)

    @property
    def is_one_shot(self) -> bool:
        return self.kind is JobKind.ONE_SHOT

    # -- Serialization ---------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted ``{"type": "cron"|"date", "value": ...}`` form."""
        return {
            "id": self.id,
            "type": "cron" if isinstance(self.trigger, Cron) else "date",
            "value": str(self.trigger),
            "tool": self.tool_name,
            "args": self.tool_args,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ScheduledJob:
        if record["type"] == "cron":
            trigger: Trigger = Cron(record["value"])
        else:
            when = datetime.fromisoformat(record["value"].replace("Z", "+00:00"))
            if when.tzinfo is None:
                when = when.replace(tzinfo=ZoneInfo("UTC"))
            trigger = At(when)
        return cls(
            id=record["id"],
            kind=kind_for(trigger),
            trigger=trigger,
            tool_name=record["tool"],
            tool_args=record.get("args") or {},
            created_at=record.get("createdAt") or 0,
        )
