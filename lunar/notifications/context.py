"""MessageContext — carries channel/routing info through the request lifecycle."""

from dataclasses import dataclass, field

from lunar.people.models import OWNER


@dataclass
class MessageContext:
    """Context for an inbound message, handed to tools that ask for it.

    Attributes:
        user_id: The chat or user identifier on the source channel.
        source_channel: Channel the message arrived on (e.g. 'telegram', 'cli').
        reply_channel: Channel to send replies on. Defaults to source_channel.
        conversation_id: Conversation key. Defaults to user_id.
        person_id: Directory id of the counterpart whose memories tools act on.
        metadata: Channel-specific extras.
    """

    user_id: str
    source_channel: str
    reply_channel: str = ""
    conversation_id: str = ""
    person_id: str = OWNER
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.reply_channel:
            self.reply_channel = self.source_channel
        if not self.conversation_id:
            self.conversation_id = self.user_id
