from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord

from ..engine.transport import ChatRef, MessageRef
from ..errors import TransportDenied, TransportError
from .common import chat_ref_for, truncate

logger = logging.getLogger("merit_room_bot")


class DiscordTransport:
    """ChatTransport over a discord.py client; every call is bounded by a timeout."""

    def __init__(self, client: discord.Client, timeout_seconds: float = 15.0) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def _resolve_channel(self, chat_id: str) -> Any:
        channel = self.client.get_channel(int(chat_id))
        if channel is None:
            channel = await asyncio.wait_for(self.client.fetch_channel(int(chat_id)), timeout=self.timeout_seconds)
        if not hasattr(channel, "send"):
            raise TransportError(f"Channel {chat_id} cannot receive messages")
        return channel

    async def send_message(self, chat: ChatRef, text: str) -> MessageRef:
        try:
            channel = await self._resolve_channel(chat.chat_id)
            sent = await asyncio.wait_for(channel.send(truncate(text)), timeout=self.timeout_seconds)
        except discord.Forbidden as exc:
            raise TransportDenied(f"Sending to {chat.chat_id} is forbidden: {exc}") from exc
        except (discord.HTTPException, asyncio.TimeoutError) as exc:
            raise TransportError(f"Sending to {chat.chat_id} failed: {exc!r}") from exc
        return MessageRef(chat=chat, message_id=str(sent.id))

    async def send_direct(self, identity_id: str, text: str) -> MessageRef:
        try:
            user = self.client.get_user(int(identity_id))
            if user is None:
                user = await asyncio.wait_for(self.client.fetch_user(int(identity_id)), timeout=self.timeout_seconds)
            sent = await asyncio.wait_for(user.send(truncate(text)), timeout=self.timeout_seconds)
        except discord.Forbidden as exc:
            # Private messages closed, or the user blocked the bot.
            raise TransportDenied(f"Direct message to {identity_id} is forbidden: {exc}") from exc
        except (discord.HTTPException, asyncio.TimeoutError) as exc:
            raise TransportError(f"Direct message to {identity_id} failed: {exc!r}") from exc
        return MessageRef(chat=chat_ref_for(sent.channel, is_group=False), message_id=str(sent.id))

    async def delete_message(self, ref: MessageRef) -> bool:
        if not ref.chat.is_group:
            return False
        try:
            channel = await self._resolve_channel(ref.chat.chat_id)
            partial = channel.get_partial_message(int(ref.message_id))  # type: ignore[attr-defined]
            await asyncio.wait_for(partial.delete(), timeout=self.timeout_seconds)
        except (discord.HTTPException, asyncio.TimeoutError, TransportError, AttributeError) as exc:
            logger.debug("Delete of %s/%s failed: %r", ref.chat.chat_id, ref.message_id, exc)
            return False
        return True
