from __future__ import annotations

import discord

from ..engine.transport import ChatRef, InboundMessage, MessageRef

MAX_MESSAGE_CHARS = 1900

_TEXT_MESSAGE_TYPES = {discord.MessageType.default, discord.MessageType.reply}


def truncate(text: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    window = text[: limit - 3]
    cut = window.rfind("\n")
    if cut >= int(limit * 0.7):
        return window[:cut].rstrip() + "\n..."
    return window.rstrip() + "..."


def chat_ref_for(channel: object, *, is_group: bool) -> ChatRef:
    return ChatRef(chat_id=str(getattr(channel, "id")), is_group=is_group)


def message_ref_for(message: discord.Message) -> MessageRef:
    return MessageRef(
        chat=chat_ref_for(message.channel, is_group=message.guild is not None),
        message_id=str(message.id),
    )


def to_inbound(message: discord.Message) -> InboundMessage:
    text = message.content or ""
    return InboundMessage(
        ref=message_ref_for(message),
        identity_id=str(message.author.id),
        display_name=(message.author.name or "").strip(),
        text=text.strip(),
        is_textual=bool(text.strip()) and message.type in _TEXT_MESSAGE_TYPES,
    )
