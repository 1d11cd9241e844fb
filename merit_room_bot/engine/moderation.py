from __future__ import annotations

import logging
from enum import Enum

from ..errors import TransportError
from ..store.records import UserRecord
from . import replies
from .context import EngineContext
from .transport import InboundMessage
from .verification import RecheckOutcome, VerificationEngine

logger = logging.getLogger("merit_room_bot")


class ModerationOutcome(str, Enum):
    NEW_USER_IGNORED = "new_user_ignored"
    NEW_USER_MODERATED = "new_user_moderated"
    UNVERIFIED_MODERATED = "unverified_moderated"
    UNVERIFIED_OUTSIDE_ROOM = "unverified_outside_room"
    VERIFIED_FRESH = "verified_fresh"
    VERIFIED_REFRESHED = "verified_refreshed"
    VERIFIED_DEMOTED = "verified_demoted"


_RECHECK_TO_MODERATION = {
    RecheckOutcome.FRESH: ModerationOutcome.VERIFIED_FRESH,
    RecheckOutcome.SKIPPED: ModerationOutcome.VERIFIED_FRESH,
    RecheckOutcome.REFRESHED: ModerationOutcome.VERIFIED_REFRESHED,
    RecheckOutcome.DEMOTED: ModerationOutcome.VERIFIED_DEMOTED,
}


class ModerationEngine:
    """Removes room messages from identities without speaking rights.

    Moderation happens after the platform has delivered the message, so a
    short visibility window is expected.
    """

    def __init__(self, ctx: EngineContext, verification: VerificationEngine) -> None:
        self.ctx = ctx
        self.verification = verification

    async def handle_message(self, message: InboundMessage) -> ModerationOutcome:
        record, created = await self.ctx.store.get_or_create(message.identity_id, message.display_name)
        if created:
            logger.info("New identity %s (%s) observed", message.identity_id, message.display_name or "-")
            if not message.is_textual:
                return ModerationOutcome.NEW_USER_IGNORED
        elif message.display_name and record.display_name != message.display_name:
            record = await self._refresh_display_name(record, message.display_name)

        if not record.is_verified:
            if not self.ctx.is_room(message.chat):
                return ModerationOutcome.UNVERIFIED_OUTSIDE_ROOM
            await self._remove(message)
            if created:
                return ModerationOutcome.NEW_USER_MODERATED
            return ModerationOutcome.UNVERIFIED_MODERATED

        outcome = await self.verification.recheck_if_stale(record, message)
        return _RECHECK_TO_MODERATION[outcome]

    async def _refresh_display_name(self, record: UserRecord, display_name: str) -> UserRecord:
        async with self.verification.claims.identity_lock(record.identity_id):
            current = await self.ctx.store.find_by_identity(record.identity_id) or record
            if current.display_name != display_name:
                current.display_name = display_name
                await self.ctx.store.save(current)
        return current

    async def _remove(self, message: InboundMessage) -> None:
        deleted = await self.ctx.transport.delete_message(message.ref)
        if not deleted:
            logger.debug("Could not delete message %s from %s", message.ref.message_id, message.identity_id)
        try:
            await self.ctx.transport.send_direct(message.identity_id, replies.deletion_notice(message.text))
        except TransportError as exc:
            # The recipient may have blocked the bot or closed private messages.
            logger.debug("Unable to send deletion notification to %s: %s", message.identity_id, exc)
