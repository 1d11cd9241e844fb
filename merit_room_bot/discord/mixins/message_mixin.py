from __future__ import annotations

import logging

import discord

from ..common import to_inbound

logger = logging.getLogger("merit_room_bot")


class MessageMixin:
    def _should_route(self, message: discord.Message) -> bool:
        if message.author.bot or message.webhook_id is not None:
            return False
        if self.user is not None and message.author.id == self.user.id:
            return False
        return True

    async def on_message(self, message: discord.Message) -> None:
        if not self._should_route(message):
            return
        inbound = to_inbound(message)
        await self.router.dispatch(inbound)
