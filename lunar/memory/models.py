"""Data models for the memory ledger."""

from pydantic import BaseModel


class Memory(BaseModel):
    """A short factual statement remembered about one person."""

    id: str
    content: str
    person_id: str  # "owner" for the local operator, else a Person.id
    created_at: int  # epoch seconds
    tags: list[str] | None = None
