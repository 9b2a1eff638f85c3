"""Tests for MemoryStore: ACL-gated reads, keyword search, prompt context and ingestion."""

import logging

import pytest

from lunar.memory.models import Memory
from lunar.memory.store import SEARCH_WINDOW, MemoryStore, rank
from lunar.people.store import PeopleStore


def _memory(content: str, id: str = "m") -> Memory:
    return Memory(id=id, content=content, person_id="p", created_at=0)


# -- Basic CRUD ------------------------------------------------------------------


async def test_add_strips_content_and_stamps(memory: MemoryStore) -> None:
    stored = await memory.add("  likes tea  ", "alice", tags=["food"])

    assert stored.content == "likes tea"
    assert stored.person_id == "alice"
    assert stored.tags == ["food"]
    assert stored.created_at > 0
    assert [m.id for m in await memory.all()] == [stored.id]


async def test_list_filters_and_tail_slices(memory: MemoryStore) -> None:
    for i in range(5):
        await memory.add(f"fact {i}", "alice")
    await memory.add("other", "bob")

    recent = await memory.list("alice", limit=2)
    assert [m.content for m in recent] == ["fact 3", "fact 4"]
    assert len(await memory.list(limit=100)) == 6
    assert await memory.list("alice", limit=0) == []


async def test_delete(memory: MemoryStore) -> None:
    stored = await memory.add("fact", "alice")
    assert await memory.delete(stored.id) is True
    assert await memory.delete(stored.id) is False
    assert await memory.all() == []


# -- Access control --------------------------------------------------------------


async def test_owner_sees_everything(memory: MemoryStore, people: PeopleStore) -> None:
    alice = await people.add("Alice", "friend")
    await memory.add("secret", alice.id)

    assert [m.content for m in await memory.accessible_to(alice.id, "owner")] == ["secret"]
    # Owner access does not even need a directory entry
    await memory.add("loose", "unknown")
    assert len(await memory.accessible_to("unknown", "owner")) == 1


async def test_default_acl_blocks_self_access(memory: MemoryStore, people: PeopleStore) -> None:
    alice = await people.add("Alice", "friend", memory_accessible_by=["owner"])
    await memory.add("private", alice.id)

    assert await memory.accessible_to(alice.id, alice.id) == []


async def test_wildcard_acl_allows_self_access(memory: MemoryStore, people: PeopleStore) -> None:
    alice = await people.add("Alice", "friend", memory_accessible_by=["*"])
    await memory.add("shared", alice.id)

    assert [m.content for m in await memory.accessible_to(alice.id, alice.id)] == ["shared"]


async def test_unknown_person_gets_nothing(memory: MemoryStore) -> None:
    await memory.add("fact", "ghost")
    assert await memory.accessible_to("ghost", "ghost") == []


async def test_acl_lists_specific_requesters(memory: MemoryStore, people: PeopleStore) -> None:
    a = await people.add("A", "friend")
    b = await people.add("B", "friend")
    c = await people.add("C", "friend", memory_accessible_by=[a.id])
    await memory.add("note about C", c.id)

    assert len(await memory.accessible_to(c.id, a.id)) == 1
    assert await memory.accessible_to(c.id, b.id) == []
    assert await memory.accessible_to(c.id, c.id) == []


# -- Search ----------------------------------------------------------------------


def test_rank_orders_by_distinct_token_hits() -> None:
    memories = [
        _memory("likes green tea", "1"),
        _memory("drinks coffee", "2"),
        _memory("green tea and coffee", "3"),
    ]
    ranked = rank(memories, "green tea coffee", 5)
    assert [m.id for m in ranked] == ["3", "1", "2"]


def test_rank_is_stable_for_ties() -> None:
    memories = [_memory("tea one", "1"), _memory("tea two", "2")]
    assert [m.id for m in rank(memories, "tea", 5)] == ["1", "2"]


def test_rank_counts_repeated_tokens_once() -> None:
    memories = [_memory("tea", "1"), _memory("tea coffee", "2")]
    assert [m.id for m in rank(memories, "tea tea tea coffee", 5)] == ["2", "1"]


def test_rank_is_case_insensitive_and_limited() -> None:
    memories = [_memory(f"Tea {i}", str(i)) for i in range(10)]
    assert len(rank(memories, "TEA", 3)) == 3


def test_rank_empty_query() -> None:
    assert rank([_memory("tea")], "   ", 5) == []


async def test_search_only_looks_at_recent_window(memory: MemoryStore) -> None:
    await memory.add("ancient kayak trip", "alice")
    for i in range(SEARCH_WINDOW):
        await memory.add(f"filler {i}", "alice")

    assert await memory.search("alice", "kayak") == []


async def test_search_scoped_to_person(memory: MemoryStore) -> None:
    await memory.add("likes tea", "alice")
    await memory.add("likes tea too", "bob")

    hits = await memory.search("alice", "tea")
    assert [m.person_id for m in hits] == ["alice"]


# -- Prompt context --------------------------------------------------------------


async def test_people_context_lists_directory(memory: MemoryStore, people: PeopleStore) -> None:
    await people.add("Alice", "friend", channel_address="111")
    await people.add("Bob", "brother")

    block = await memory.people_context()
    assert "KNOWN PEOPLE:" in block
    assert "- Alice (friend) [111]" in block
    assert "- Bob (brother)" in block


async def test_people_context_empty(memory: MemoryStore) -> None:
    assert await memory.people_context() == ""


async def test_context_block_dedupes_and_orders(memory: MemoryStore, people: PeopleStore) -> None:
    alice = await people.add("Alice", "friend", memory_accessible_by=["*"])
    await memory.add("likes kayaking", alice.id)
    await memory.add("works nights", alice.id)

    block = await memory.context_block(alice.id, "kayaking")

    lines = [line for line in block.splitlines() if line.startswith("- ") and "(" not in line]
    assert lines == ["- likes kayaking", "- works nights"]
    assert "MEMORY (things you remember about this person):" in block


async def test_context_block_respects_acl(memory: MemoryStore, people: PeopleStore) -> None:
    alice = await people.add("Alice", "friend")
    await memory.add("surprise party planned", alice.id)

    block = await memory.context_block(alice.id, "party")

    # The owner's notes are included, but only via the owner-notes section
    assert block.count("surprise party planned") == 1


async def test_context_block_without_memories(memory: MemoryStore) -> None:
    assert "MEMORY" not in await memory.context_block("owner", "anything")


# -- Inline ingestion ------------------------------------------------------------


async def test_ingest_strips_block_and_stores(memory: MemoryStore) -> None:
    output = 'Sure thing!\n<MEMORY>["likes tea", "has a cat"]</MEMORY>'

    cleaned = await memory.ingest_inline(output, "alice")

    assert cleaned == "Sure thing!"
    assert [m.content for m in await memory.list("alice")] == ["likes tea", "has a cat"]


async def test_ingest_dedupes_case_insensitively(memory: MemoryStore) -> None:
    await memory.ingest_inline('<MEMORY>["Likes tea"]</MEMORY>', "alice")
    await memory.ingest_inline('<MEMORY>["likes TEA", "likes tea"]</MEMORY>', "alice")

    assert len(await memory.list("alice")) == 1


async def test_ingest_without_block_is_passthrough(memory: MemoryStore) -> None:
    assert await memory.ingest_inline("plain reply", "alice") == "plain reply"
    assert await memory.all() == []


async def test_ingest_malformed_payload_is_logged_and_dropped(
    memory: MemoryStore, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="lunar.memory.store"):
        cleaned = await memory.ingest_inline("Hi <MEMORY>[not json</MEMORY>", "alice")

    assert cleaned == "Hi"
    assert await memory.all() == []
    assert any("Discarded inline memory block" in r.message for r in caplog.records)


async def test_ingest_non_list_payload_is_dropped(memory: MemoryStore) -> None:
    cleaned = await memory.ingest_inline('Hi <MEMORY>{"fact": "x"}</MEMORY>', "alice")
    assert cleaned == "Hi"
    assert await memory.all() == []


async def test_ingest_skips_blank_and_non_string_facts(memory: MemoryStore) -> None:
    await memory.ingest_inline('<MEMORY>["", 42, "real fact"]</MEMORY>', "alice")
    assert [m.content for m in await memory.all()] == ["real fact"]
