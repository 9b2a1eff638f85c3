"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Lunar configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    default_chat_model: str = Field(default="sonnet")
    max_tokens: int = Field(default=4096)

    # Agent loop
    max_tool_rounds: int = Field(default=25)
    conversation_window_size: int = Field(default=50)
    memory_ingestion_enabled: bool = Field(default=True)

    # Persistence (people, memories, scheduled jobs)
    database_path: Path = Field(default=Path("data/lunar.db"))

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")

    # Telegram
    telegram_bot_token: str = Field(default="")
    allowed_chat_ids: str = Field(default="")
    ai_hotword: str = Field(default="@ai")
    max_attachment_bytes: int = Field(default=5 * 1024 * 1024)

    # Dashboard
    dashboard_host: str = Field(default="127.0.0.1")
    dashboard_port: int = Field(default=3210)

    # Logging
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_allowed_chat_ids(self) -> set[str]:
        """Parse ALLOWED_CHAT_IDS into a set of chat id strings."""
        if not self.allowed_chat_ids.strip():
            return set()
        return {cid.strip() for cid in self.allowed_chat_ids.split(",") if cid.strip()}

    @property
    def start_command(self) -> str:
        """Hotword that switches a chat to always-on mode."""
        return f"{self.ai_hotword}_start"

    @property
    def stop_command(self) -> str:
        """Hotword that switches a chat back to hotword-only mode."""
        return f"{self.ai_hotword}_stop"


settings = Settings()
