"""PeopleStore — CRUD for the person directory document."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from lunar.people.models import Person

if TYPE_CHECKING:
    from lunar.db import DocumentStore

logger = logging.getLogger(__name__)

PEOPLE_KEY = "people"


class PeopleStore:
    """Persists the directory of known people as one document."""

    def __init__(self, db: DocumentStore) -> None:
        self._db = db

    async def list(self) -> list[Person]:
        """Return every known person in insertion order."""
        raw = await self._db.get(PEOPLE_KEY, [])
        return [Person.model_validate(item) for item in raw]

    async def get(self, person_id: str) -> Person | None:
        """Fetch one person by id, or None if not found."""
        for person in await self.list():
            if person.id == person_id:
                return person
        return None

    async def find_by_address(self, address: str) -> Person | None:
        """Resolve a channel address (e.g. a chat id) to a known person."""
        for person in await self.list():
            if person.channel_address and person.channel_address == address:
                return person
        return None

    async def find_by_name(self, name: str) -> Person | None:
        """Case-insensitive name lookup."""
        wanted = name.strip().lower()
        for person in await self.list():
            if person.name.lower() == wanted:
                return person
        return None

    async def add(
        self,
        name: str,
        relation: str,
        *,
        channel_address: str | None = None,
        notes: str | None = None,
        memory_accessible_by: list[str] | None = None,
    ) -> Person:
        """Create a person with a fresh id. Returns the stored record."""
        person = Person(
            id=uuid.uuid4().hex,
            name=name,
            relation=relation,
            channel_address=channel_address,
            notes=notes,
            memory_accessible_by=memory_accessible_by,
        )

        def _append(items: list[dict]) -> list[dict]:
            return [*items, person.model_dump()]

        await self._db.update(PEOPLE_KEY, _append, [])
        logger.info("Added person: %s (%s)", person.name, person.id)
        return person

    async def update(self, person_id: str, **changes: Any) -> Person | None:
        """Apply non-None field changes. The id is never overwritten."""
        clean = {k: v for k, v in changes.items() if v is not None and k != "id"}
        updated: Person | None = None

        def _apply(items: list[dict]) -> list[dict]:
            nonlocal updated
            result = []
            for item in items:
                if item.get("id") == person_id:
                    updated = Person.model_validate({**item, **clean})
                    result.append(updated.model_dump())
                else:
                    result.append(item)
            return result

        await self._db.update(PEOPLE_KEY, _apply, [])
        return updated

    async def delete(self, person_id: str) -> bool:
        """Delete a person. Returns True if a record was removed."""
        removed = False

        def _remove(items: list[dict]) -> list[dict]:
            nonlocal removed
            kept = [item for item in items if item.get("id") != person_id]
            removed = len(kept) != len(items)
            return kept

        await self._db.update(PEOPLE_KEY, _remove, [])
        if removed:
            logger.info("Deleted person: %s", person_id)
        return removed
