"""NotificationChannel protocol — interface for all outbound delivery channels."""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'telegram')."""
        ...

    async def send(self, user_id: str, message: str) -> bool:
        """Send a plain text message. Returns True on success."""
        ...

    async def send_file(self, user_id: str, path: Path, *, caption: str | None = None) -> bool:
        """Send a local file as a document. Returns True on success."""
        ...
