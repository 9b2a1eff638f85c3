"""Chat model selection, switchable at runtime with /model."""

import logging

from lunar.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5",
    "sonnet": "claude-sonnet-4-5",
    "opus": "claude-opus-4-1",
}

FRIENDLY_NAMES: dict[str, str] = {model_id: name for name, model_id in MODEL_MAP.items()}


def _resolve(name_or_id: str) -> str | None:
    """Accept either a short name ("haiku") or a known full model id."""
    if name_or_id in MODEL_MAP:
        return MODEL_MAP[name_or_id]
    return name_or_id if name_or_id in FRIENDLY_NAMES else None


def friendly(model_id: str) -> str:
    return FRIENDLY_NAMES.get(model_id, model_id)


class ModelManager:
    """Holds the model id the backend sends requests to.

    Unknown defaults fall back to sonnet.
    """

    def __init__(self, default: str | None = None) -> None:
        self._chat_model = _resolve(default or settings.default_chat_model) or MODEL_MAP["sonnet"]
        logger.info("Chat model: %s", friendly(self._chat_model))

    def get_chat_model(self) -> str:
        return self._chat_model

    def set_chat_model(self, name: str) -> str | None:
        """Switch models. Returns the full id, or None (and no change) if *name* is unknown."""
        model_id = _resolve(name)
        if model_id is None:
            return None
        self._chat_model = model_id
        logger.info("Chat model → %s", friendly(model_id))
        return model_id
