from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .claims import ClaimRegistry
from .context import EngineContext
from .moderation import ModerationEngine
from .transport import InboundMessage
from .verification import VerificationEngine

logger = logging.getLogger("merit_room_bot")

Handler = Callable[[InboundMessage], Awaitable[Any]]


class EventRouter:
    """Routes each inbound message to one command handler or to moderation.

    Every dispatch is isolated: a failing handler is logged and the event is
    considered consumed.
    """

    def __init__(self, fallback: Handler) -> None:
        self._fallback = fallback
        self._commands: dict[str, Handler] = {}

    def register(self, keyword: str, handler: Handler) -> None:
        if not keyword.startswith("/"):
            raise ValueError(f"Command keyword must start with '/': {keyword}")
        self._commands[keyword] = handler

    @property
    def commands(self) -> list[str]:
        return sorted(self._commands)

    def command_for(self, message: InboundMessage) -> str | None:
        tokens = message.tokens
        if not tokens:
            return None
        keyword = tokens[0]
        return keyword if keyword in self._commands else None

    async def dispatch(self, message: InboundMessage) -> Any:
        keyword = self.command_for(message)
        handler = self._commands[keyword] if keyword else self._fallback
        try:
            return await handler(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Handler %s failed for identity=%s chat=%s message=%s",
                keyword or "moderation",
                message.identity_id,
                message.chat.chat_id,
                message.ref.message_id,
            )
            return None


def build_router(ctx: EngineContext) -> tuple[EventRouter, VerificationEngine, ModerationEngine]:
    claims = ClaimRegistry(ctx.store)
    verification = VerificationEngine(ctx, claims)
    moderation = ModerationEngine(ctx, verification)

    router = EventRouter(fallback=moderation.handle_message)
    router.register("/start", verification.help)
    router.register("/help", verification.help)
    router.register("/verify", verification.verify)
    router.register("/revoke", verification.revoke)
    router.register("/merit", verification.query_merit)
    router.register("/list", verification.list_verified)
    router.register("/stats", verification.stats)
    return router, verification, moderation
