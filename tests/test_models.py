"""Tests for ModelManager."""

from lunar.llm.models import MODEL_MAP, ModelManager, friendly


def test_default_comes_from_settings() -> None:
    assert ModelManager().get_chat_model() == MODEL_MAP["sonnet"]


def test_explicit_default() -> None:
    assert ModelManager("opus").get_chat_model() == MODEL_MAP["opus"]


def test_unknown_default_falls_back_to_sonnet() -> None:
    assert ModelManager("gpt-4").get_chat_model() == MODEL_MAP["sonnet"]


def test_set_by_friendly_name() -> None:
    mm = ModelManager()
    assert mm.set_chat_model("haiku") == MODEL_MAP["haiku"]
    assert mm.get_chat_model() == MODEL_MAP["haiku"]


def test_set_by_full_id() -> None:
    mm = ModelManager()
    assert mm.set_chat_model(MODEL_MAP["opus"]) == MODEL_MAP["opus"]


def test_set_invalid_keeps_current() -> None:
    mm = ModelManager("haiku")
    assert mm.set_chat_model("nonsense") is None
    assert mm.get_chat_model() == MODEL_MAP["haiku"]


def test_friendly() -> None:
    assert friendly(MODEL_MAP["sonnet"]) == "sonnet"
    assert friendly("some-other-model") == "some-other-model"


def test_instances_are_independent() -> None:
    a, b = ModelManager(), ModelManager()
    a.set_chat_model("opus")
    assert b.get_chat_model() == MODEL_MAP["sonnet"]
