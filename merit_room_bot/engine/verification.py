from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum

from ..addresses import normalize_address, to_token_address
from ..errors import ClaimConflict, InvalidAddressError, MalformedSignature, NotOwner, RecordNotFound, TransportError
from ..store.records import UserRecord
from . import replies
from .claims import ClaimRegistry
from .context import EngineContext
from .transport import InboundMessage

logger = logging.getLogger("merit_room_bot")


class VerifyOutcome(str, Enum):
    BAD_ARGUMENTS = "bad_arguments"
    INVALID_ADDRESS = "invalid_address"
    INVALID_PROOF = "invalid_proof"
    CLAIM_CONFLICT = "claim_conflict"
    VERIFIED = "verified"
    BELOW_THRESHOLD = "below_threshold"


class RecheckOutcome(str, Enum):
    FRESH = "fresh"
    SKIPPED = "skipped"
    REFRESHED = "refreshed"
    DEMOTED = "demoted"


class RevokeOutcome(str, Enum):
    BAD_ARGUMENTS = "bad_arguments"
    INVALID_ADDRESS = "invalid_address"
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"
    REVOKED = "revoked"


class MeritQueryOutcome(str, Enum):
    BAD_ARGUMENTS = "bad_arguments"
    NOT_FOUND = "not_found"
    FOUND = "found"


class VerificationEngine:
    """Owns the verify / re-check / revoke transitions of user records.

    Unknown -> Unverified -> Verified; Verified -> Unverified when a re-check
    falls below the threshold; any state -> Unverified (claim cleared) on revoke.
    """

    def __init__(self, ctx: EngineContext, claims: ClaimRegistry) -> None:
        self.ctx = ctx
        self.claims = claims

    def _who(self, message: InboundMessage) -> str:
        return replies.mention(message.display_name, message.identity_id)

    def is_stale(self, record: UserRecord, now: datetime) -> bool:
        if record.last_verified_at is None:
            return True
        return now - record.last_verified_at > self.ctx.policy.stale_after

    async def help(self, message: InboundMessage) -> None:
        policy = self.ctx.policy
        await self.ctx.reply(message, replies.help_text(policy.challenge_word, policy.merit_threshold))

    async def verify(self, message: InboundMessage) -> VerifyOutcome:
        args = message.tokens[1:]
        who = self._who(message)
        if len(args) != 2:
            await self.ctx.reply(message, replies.wrong_arguments("/verify <address> <signature>"))
            return VerifyOutcome.BAD_ARGUMENTS

        raw_address, proof = args
        try:
            address = normalize_address(raw_address)
        except InvalidAddressError as exc:
            logger.debug("Rejected /verify address from %s: %s", message.identity_id, exc)
            await self.ctx.reply(message, replies.verify_failed(who))
            return VerifyOutcome.INVALID_ADDRESS
        derived = to_token_address(address)

        try:
            valid = await self.ctx.oracle.validate_signature(address, proof, self.ctx.policy.challenge_word)
        except MalformedSignature as exc:
            logger.debug("Malformed signature from %s: %s", message.identity_id, exc)
            valid = False
        if not valid:
            await self.ctx.reply(message, replies.verify_failed(who))
            return VerifyOutcome.INVALID_PROOF

        try:
            async with self.claims.exclusive_claim(address, message.identity_id):
                record, _ = await self.ctx.store.get_or_create(message.identity_id, message.display_name)
                if message.display_name:
                    record.display_name = message.display_name
                record.assign_claim(address, derived)
                record.merit_score = await self.ctx.oracle.compute_merit(derived)
                record.last_verified_at = self.ctx.clock()
                record.is_verified = self.ctx.policy.meets_threshold(record.merit_score)
                await self.claims.save_claim(record)
        except ClaimConflict as exc:
            logger.info(
                "Identity %s tried to claim %s owned by %s",
                message.identity_id,
                address,
                exc.owner_identity_id,
            )
            await self.ctx.reply(message, replies.already_claimed(exc.owner_label))
            return VerifyOutcome.CLAIM_CONFLICT

        if record.is_verified:
            logger.info("Identity %s verified with merit %s", message.identity_id, record.merit_score)
            if not self.ctx.is_room(message.chat):
                await self.ctx.announce(replies.verify_succeeded(who))
            await self.ctx.reply(message, replies.verify_succeeded(who))
            return VerifyOutcome.VERIFIED

        logger.info(
            "Identity %s proved %s but merit %s is below %s",
            message.identity_id,
            address,
            record.merit_score,
            self.ctx.policy.merit_threshold,
        )
        notice = replies.below_threshold(who, record.merit_score, self.ctx.policy.merit_threshold)
        try:
            await self.ctx.transport.send_direct(message.identity_id, notice)
        except TransportError as exc:
            logger.debug("Private shortfall notice to %s failed, replying in chat: %s", message.identity_id, exc)
            await self.ctx.reply(message, notice)
        return VerifyOutcome.BELOW_THRESHOLD

    async def recheck_if_stale(
        self,
        record: UserRecord,
        message: InboundMessage | None = None,
        now: datetime | None = None,
    ) -> RecheckOutcome:
        now = now or self.ctx.clock()
        if not self.is_stale(record, now):
            return RecheckOutcome.FRESH

        async with self.claims.identity_lock(record.identity_id):
            current = await self.ctx.store.find_by_identity(record.identity_id)
            if current is None or not current.is_verified or not current.derived_address:
                return RecheckOutcome.SKIPPED
            if not self.is_stale(current, now):
                return RecheckOutcome.FRESH

            logger.debug("Re-checking merit of %s (last verified %s)", current.identity_id, current.last_verified_at)
            current.merit_score = await self.ctx.oracle.compute_merit(current.derived_address)
            current.last_verified_at = now
            current.is_verified = self.ctx.policy.meets_threshold(current.merit_score)
            if message is not None and message.display_name:
                current.display_name = message.display_name
            await self.ctx.store.save(current)

        if current.is_verified:
            logger.debug("Identity %s had its merit re-verified", current.identity_id)
            return RecheckOutcome.REFRESHED

        logger.info(
            "Identity %s demoted: merit %s below %s",
            current.identity_id,
            current.merit_score,
            self.ctx.policy.merit_threshold,
        )
        notice = replies.demoted(replies.mention(current.display_name, current.identity_id), current.merit_score)
        if message is not None:
            await self.ctx.reply(message, notice)
        else:
            await self.ctx.announce(notice)
        return RecheckOutcome.DEMOTED

    async def sweep_stale(self) -> int:
        """Re-check every verified record; used by the optional background sweep."""
        demoted = 0
        now = self.ctx.clock()
        for record in await self.ctx.store.list_verified():
            try:
                outcome = await self.recheck_if_stale(record, None, now)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Sweep re-check failed for identity=%s", record.identity_id)
                continue
            if outcome is RecheckOutcome.DEMOTED:
                demoted += 1
        return demoted

    async def revoke(self, message: InboundMessage) -> RevokeOutcome:
        args = message.tokens[1:]
        who = self._who(message)
        if len(args) != 1:
            await self.ctx.reply(message, replies.wrong_arguments("/revoke <address>"))
            return RevokeOutcome.BAD_ARGUMENTS

        raw_address = args[0]
        try:
            address = normalize_address(raw_address)
        except InvalidAddressError:
            await self.ctx.reply(message, replies.invalid_address(raw_address))
            return RevokeOutcome.INVALID_ADDRESS

        try:
            await self.claims.revoke(message.identity_id, address)
        except RecordNotFound:
            await self.ctx.reply(message, replies.address_not_found(raw_address))
            return RevokeOutcome.NOT_FOUND
        except NotOwner:
            await self.ctx.reply(message, replies.not_owner(who, raw_address))
            return RevokeOutcome.NOT_OWNER

        await self.ctx.reply(message, replies.revoked(who, raw_address))
        return RevokeOutcome.REVOKED

    async def query_merit(self, message: InboundMessage) -> MeritQueryOutcome:
        if len(message.tokens) != 1:
            await self.ctx.reply(message, replies.wrong_arguments())
            return MeritQueryOutcome.BAD_ARGUMENTS

        record = await self.ctx.store.find_by_identity(message.identity_id)
        if record is None:
            await self.ctx.reply(message, replies.user_not_found())
            return MeritQueryOutcome.NOT_FOUND

        name = message.display_name or record.display_name or record.identity_id
        await self.ctx.reply(message, replies.merit_score(name, record.merit_score))
        return MeritQueryOutcome.FOUND

    async def list_verified(self, message: InboundMessage) -> int:
        records = await self.ctx.store.list_verified()
        await self.ctx.reply(message, replies.verified_list(records))
        return len(records)

    async def stats(self, message: InboundMessage) -> tuple[int, float]:
        records = await self.ctx.store.list_verified()
        total = sum(record.merit_score for record in records)
        await self.ctx.reply(message, replies.stats(len(records), total))
        return len(records), total
