"""Tests for system prompt assembly."""

from lunar.llm.prompt import AGENTIC_SYSTEM_PROMPT, NO_RESPONSE, build_system_prompt


def test_static_prompt_mentions_sentinel_and_memory_block() -> None:
    assert NO_RESPONSE in AGENTIC_SYSTEM_PROMPT
    assert "<MEMORY>" in AGENTIC_SYSTEM_PROMPT


def test_build_without_context() -> None:
    assert build_system_prompt() == AGENTIC_SYSTEM_PROMPT
    assert build_system_prompt("   ") == AGENTIC_SYSTEM_PROMPT


def test_build_appends_context() -> None:
    block = "\nMEMORY (things you remember about this person):\n- likes tea\n"
    prompt = build_system_prompt(block)
    assert prompt.startswith(AGENTIC_SYSTEM_PROMPT)
    assert prompt.endswith("- likes tea\n")
