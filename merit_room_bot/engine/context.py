from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from ..config import Settings
from ..errors import TransportDenied
from ..store.records import utc_now
from .cleanup import SpamCleanupScheduler
from .transport import ChatRef, ChatTransport, InboundMessage, MessageRef

logger = logging.getLogger("merit_room_bot")


@dataclass(slots=True)
class EnginePolicy:
    room_chat_id: str
    merit_threshold: float = 30000.0
    stale_after: timedelta = timedelta(days=1)
    challenge_word: str = "verify"

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnginePolicy":
        return cls(
            room_chat_id=str(settings.room_channel_id),
            merit_threshold=float(settings.merit_threshold),
            stale_after=timedelta(milliseconds=settings.stale_after_ms),
            challenge_word=settings.verify_challenge_word,
        )

    @property
    def room(self) -> ChatRef:
        return ChatRef(chat_id=self.room_chat_id, is_group=True)

    def meets_threshold(self, merit: float) -> bool:
        return float(merit) >= self.merit_threshold


@dataclass(slots=True)
class EngineContext:
    """Collaborators shared by every handler; one instance per running bot."""

    policy: EnginePolicy
    store: Any
    oracle: Any
    transport: ChatTransport
    scheduler: SpamCleanupScheduler
    clock: Callable[[], datetime] = field(default=utc_now)

    def is_room(self, chat: ChatRef) -> bool:
        return chat.chat_id == self.policy.room_chat_id

    async def reply(self, message: InboundMessage, text: str) -> MessageRef | None:
        try:
            sent = await self.transport.send_message(message.chat, text)
        except TransportDenied as exc:
            logger.debug("Reply to chat=%s was refused: %s", message.chat.chat_id, exc)
            return None
        self.scheduler.schedule(message.ref, sent)
        return sent

    async def announce(self, text: str) -> MessageRef | None:
        try:
            return await self.transport.send_message(self.policy.room, text)
        except TransportDenied as exc:
            logger.debug("Room announcement was refused: %s", exc)
            return None
