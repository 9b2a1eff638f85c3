"""Person record for the directory of known counterparties."""

from pydantic import BaseModel

OWNER = "owner"
EVERYONE = "*"


class Person(BaseModel):
    """A known counterparty.

    ``memory_accessible_by`` lists the requester ids allowed to read this
    person's memories. ``"*"`` means every requester; ``"owner"`` is the
    local operator. Unset means only the owner.
    """

    id: str
    name: str
    relation: str
    channel_address: str | None = None
    notes: str | None = None
    memory_accessible_by: list[str] | None = None

    @property
    def acl(self) -> list[str]:
        return self.memory_accessible_by or [OWNER]

    def allows(self, requester_id: str) -> bool:
        acl = self.acl
        return EVERYONE in acl or requester_id in acl
