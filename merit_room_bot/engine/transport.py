from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ChatRef:
    chat_id: str
    is_group: bool


@dataclass(frozen=True, slots=True)
class MessageRef:
    chat: ChatRef
    message_id: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.chat.chat_id, self.message_id)


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """Platform-neutral view of one delivered chat message."""

    ref: MessageRef
    identity_id: str
    display_name: str
    text: str
    is_textual: bool = True

    @property
    def chat(self) -> ChatRef:
        return self.ref.chat

    @property
    def tokens(self) -> list[str]:
        return self.text.split(" ") if self.text else []


class ChatTransport(Protocol):
    async def send_message(self, chat: ChatRef, text: str) -> MessageRef:
        """Post into a chat; raises TransportDenied/TransportError on failure."""

    async def send_direct(self, identity_id: str, text: str) -> MessageRef:
        """Open or reuse a private chat with the identity and post into it."""

    async def delete_message(self, ref: MessageRef) -> bool:
        """Delete a message; returns False instead of raising when it cannot."""
