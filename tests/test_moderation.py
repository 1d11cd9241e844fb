from __future__ import annotations

import asyncio
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from merit_room_bot.engine.moderation import ModerationOutcome  # noqa: E402
from merit_room_bot.engine.router import build_router  # noqa: E402
from support import (  # noqa: E402
    OTHER_GROUP,
    ROOM,
    FakeClock,
    FakeOracle,
    FakeTransport,
    address_for,
    build_context,
    dm_chat,
    make_message,
)


def test_join_event_of_new_identity_is_only_recorded(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        ctx = await build_context(tmp_path, transport=transport)
        _, _, moderation = build_router(ctx)

        outcome = await moderation.handle_message(make_message("1", "", name="newbie", is_textual=False))

        assert outcome is ModerationOutcome.NEW_USER_IGNORED
        record = await ctx.store.find_by_identity("1")
        assert record is not None and record.is_verified is False
        assert transport.deleted == []
        assert transport.direct == []

    asyncio.run(scenario())


def test_first_message_of_new_identity_in_room_is_removed(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        ctx = await build_context(tmp_path, transport=transport)
        _, _, moderation = build_router(ctx)
        message = make_message("2", "hello everyone", name="newbie")

        outcome = await moderation.handle_message(message)

        assert outcome is ModerationOutcome.NEW_USER_MODERATED
        assert transport.deleted == [message.ref]
        assert len(transport.direct) == 1
        identity, text = transport.direct[0]
        assert identity == "2"
        assert "/start" in text and "hello everyone" in text

    asyncio.run(scenario())


def test_unverified_message_outside_room_is_left_alone(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        ctx = await build_context(tmp_path, transport=transport)
        _, _, moderation = build_router(ctx)
        await ctx.store.get_or_create("3", "someone")

        in_group = await moderation.handle_message(make_message("3", "hi", chat=OTHER_GROUP))
        in_private = await moderation.handle_message(make_message("3", "hi", chat=dm_chat("3")))

        assert in_group is ModerationOutcome.UNVERIFIED_OUTSIDE_ROOM
        assert in_private is ModerationOutcome.UNVERIFIED_OUTSIDE_ROOM
        assert transport.deleted == []
        assert transport.direct == []

    asyncio.run(scenario())


def test_blocked_private_notice_does_not_stop_moderation(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport()
        transport.deny_direct = True
        ctx = await build_context(tmp_path, transport=transport)
        _, _, moderation = build_router(ctx)
        await ctx.store.get_or_create("4", "quiet")
        message = make_message("4", "spam", name="quiet")

        outcome = await moderation.handle_message(message)

        assert outcome is ModerationOutcome.UNVERIFIED_MODERATED
        assert transport.deleted == [message.ref]

    asyncio.run(scenario())


def test_display_name_is_refreshed_for_existing_identity(tmp_path: Path) -> None:
    async def scenario() -> None:
        ctx = await build_context(tmp_path)
        _, _, moderation = build_router(ctx)
        await ctx.store.get_or_create("5", "oldname")

        await moderation.handle_message(make_message("5", "hi", chat=dm_chat("5"), name="newname"))

        record = await ctx.store.find_by_identity("5")
        assert record is not None and record.display_name == "newname"

    asyncio.run(scenario())


def test_fresh_verified_identity_speaks_without_oracle_call(tmp_path: Path) -> None:
    async def scenario() -> None:
        oracle = FakeOracle(merit=35000)
        transport = FakeTransport()
        ctx = await build_context(tmp_path, oracle=oracle, transport=transport)
        _, verification, moderation = build_router(ctx)
        await verification.verify(make_message("6", f"/verify {address_for(6)} SIG", chat=dm_chat("6"), name="vip"))
        oracle.merit_calls.clear()
        transport.sent.clear()

        outcome = await moderation.handle_message(make_message("6", "good morning", name="vip"))

        assert outcome is ModerationOutcome.VERIFIED_FRESH
        assert oracle.merit_calls == []
        assert transport.deleted == []
        assert transport.sent == []

    asyncio.run(scenario())


def test_stale_verified_identity_is_refreshed_or_demoted(tmp_path: Path) -> None:
    async def scenario() -> None:
        oracle = FakeOracle(merit=35000)
        clock = FakeClock()
        transport = FakeTransport()
        ctx = await build_context(tmp_path, oracle=oracle, transport=transport, clock=clock)
        _, verification, moderation = build_router(ctx)
        await verification.verify(make_message("7", f"/verify {address_for(7)} SIG", chat=dm_chat("7"), name="vip"))

        clock.advance(days=1, seconds=1)
        refreshed = await moderation.handle_message(make_message("7", "still here", name="vip"))
        assert refreshed is ModerationOutcome.VERIFIED_REFRESHED
        record = await ctx.store.find_by_identity("7")
        assert record is not None and record.last_verified_at == clock.now

        clock.advance(days=1, seconds=1)
        oracle.default_merit = 1200
        message = make_message("7", "and now?", name="vip")
        demoted = await moderation.handle_message(message)
        assert demoted is ModerationOutcome.VERIFIED_DEMOTED
        record = await ctx.store.find_by_identity("7")
        assert record is not None and record.is_verified is False
        assert any("1200" in text for text in transport.texts_to(ROOM))
        # The demoting message itself is kept; the next one is moderated.
        assert message.ref not in transport.deleted

        followup = make_message("7", "hello?", name="vip")
        assert await moderation.handle_message(followup) is ModerationOutcome.UNVERIFIED_MODERATED
        assert followup.ref in transport.deleted
        await ctx.scheduler.shutdown()

    asyncio.run(scenario())
