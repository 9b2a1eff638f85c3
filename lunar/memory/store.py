"""Per-person memory ledger with access control and keyword retrieval.

All memories live in one flat list under the ``"memories"`` document and are
filtered by ``person_id`` on read. Entries are never edited, only added or
deleted.

Access rules (``accessible_to``):
- The ``"owner"`` requester always sees everything.
- Anyone else, including the person themselves, must be listed in the
  memory owner's ACL, or the ACL must contain ``"*"``.
- Everything else gets an empty list.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import TYPE_CHECKING

from lunar.memory.models import Memory
from lunar.people.models import OWNER

if TYPE_CHECKING:
    from lunar.db import DocumentStore
    from lunar.people.store import PeopleStore

logger = logging.getLogger(__name__)

MEMORIES_KEY = "memories"
SEARCH_WINDOW = 100

MEMORY_BLOCK_RE = re.compile(r"<MEMORY>(.*?)</MEMORY>", re.DOTALL)


def rank(memories: list[Memory], query: str, limit: int) -> list[Memory]:
    """Keyword relevance: count of distinct query tokens found in each memory."""
    tokens = list(dict.fromkeys(t for t in query.lower().split() if t))
    if not tokens:
        return []
    scored = []
    for memory in memories:
        text = memory.content.lower()
        score = sum(1 for t in tokens if t in text)
        if score > 0:
            scored.append((score, memory))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [memory for _, memory in scored[:limit]]


class MemoryStore:
    """Memory ledger over the shared document store."""

    def __init__(self, db: DocumentStore, people: PeopleStore) -> None:
        self._db = db
        self._people = people

    # -- Read ----------------------------------------------------------------

    async def all(self) -> list[Memory]:
        raw = await self._db.get(MEMORIES_KEY, [])
        return [Memory.model_validate(item) for item in raw]

    async def list(self, person_id: str | None = None, limit: int = 20) -> list[Memory]:
        """Insertion-ordered memories, optionally for one person, tail-sliced to *limit*."""
        memories = await self.all()
        if person_id is not None:
            memories = [m for m in memories if m.person_id == person_id]
        if limit <= 0:
            return []
        return memories[-limit:]

    async def search(self, person_id: str, query: str, limit: int = 5) -> list[Memory]:
        """Rank the person's most recent memories against *query*."""
        candidates = await self.list(person_id, SEARCH_WINDOW)
        return rank(candidates, query, limit)

    async def accessible_to(
        self, owner_id: str, requester_id: str, limit: int = 20
    ) -> list[Memory]:
        """Memories about *owner_id* that *requester_id* may read."""
        if requester_id == OWNER:
            return await self.list(owner_id, limit)

        person = await self._people.get(owner_id)
        if person is None or not person.allows(requester_id):
            return []
        return await self.list(owner_id, limit)

    # -- Write ---------------------------------------------------------------

    async def add(self, content: str, person_id: str, tags: list[str] | None = None) -> Memory:
        memory = Memory(
            id=uuid.uuid4().hex,
            content=content.strip(),
            person_id=person_id,
            created_at=int(time.time()),
            tags=tags,
        )

        def _append(items: list[dict]) -> list[dict]:
            return [*items, memory.model_dump()]

        await self._db.update(MEMORIES_KEY, _append, [])
        logger.info("Stored memory for %s: %s", person_id, memory.content[:80])
        return memory

    async def delete(self, memory_id: str) -> bool:
        removed = False

        def _remove(items: list[dict]) -> list[dict]:
            nonlocal removed
            kept = [item for item in items if item.get("id") != memory_id]
            removed = len(kept) != len(items)
            return kept

        await self._db.update(MEMORIES_KEY, _remove, [])
        return removed

    # -- Prompt context ------------------------------------------------------

    async def people_context(self) -> str:
        people = await self._people.list()
        if not people:
            return ""
        lines = []
        for person in people:
            line = f"- {person.name} ({person.relation})"
            if person.channel_address:
                line += f" [{person.channel_address}]"
            lines.append(line)
        return "\nKNOWN PEOPLE:\n" + "\n".join(lines) + "\n"

    async def context_block(self, person_id: str, query: str | None = None) -> str:
        """Build the memory section appended to the system prompt.

        Order: keyword hits (3), the owner's notes about this person (5),
        recent accessible memories (5). Duplicates keep their first position.
        """
        hits: list[Memory] = []
        if query:
            accessible = await self.accessible_to(person_id, person_id, SEARCH_WINDOW)
            hits = rank(accessible, query, 3)

        owner_notes: list[Memory] = []
        if person_id != OWNER:
            owner_notes = await self.accessible_to(person_id, OWNER, 5)

        recent = await self.accessible_to(person_id, person_id, 5)

        seen: set[str] = set()
        combined: list[Memory] = []
        for memory in [*hits, *owner_notes, *recent]:
            if memory.id not in seen:
                seen.add(memory.id)
                combined.append(memory)

        result = await self.people_context()
        if combined:
            lines = "\n".join(f"- {m.content}" for m in combined)
            result += f"\nMEMORY (things you remember about this person):\n{lines}\n"
        return result

    # -- Inline ingestion ----------------------------------------------------

    async def ingest_inline(self, model_output: str, person_id: str) -> str:
        """Strip a ``<MEMORY>[...]</MEMORY>`` block from a reply and store its facts.

        Returns the cleaned reply. Never raises: a malformed payload is
        logged and dropped, the block is removed regardless.
        """
        match = MEMORY_BLOCK_RE.search(model_output)
        if match is None:
            return model_output

        cleaned = MEMORY_BLOCK_RE.sub("", model_output, count=1).strip()

        try:
            facts = json.loads(match.group(1).strip())
        except json.JSONDecodeError as exc:
            logger.warning("Discarded inline memory block for %s: %s", person_id, exc)
            return cleaned
        if not isinstance(facts, list):
            logger.warning(
                "Discarded inline memory block for %s: expected a list, got %s",
                person_id,
                type(facts).__name__,
            )
            return cleaned

        try:
            known = {
                m.content.strip().lower() for m in await self.all() if m.person_id == person_id
            }
            for fact in facts:
                if not isinstance(fact, str) or not fact.strip():
                    continue
                normalized = fact.strip().lower()
                if normalized in known:
                    continue
                await self.add(fact, person_id)
                known.add(normalized)
        except Exception:
            logger.exception("Failed to store inline memories for %s", person_id)

        return cleaned
