from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

discord = pytest.importorskip("discord")

from merit_room_bot.config import Settings  # noqa: E402
from merit_room_bot.discord.client import MeritRoomDiscordBot  # noqa: E402
from merit_room_bot.discord.common import to_inbound, truncate  # noqa: E402
from merit_room_bot.discord.transport import DiscordTransport  # noqa: E402
from merit_room_bot.engine.transport import ChatRef, MessageRef  # noqa: E402
from merit_room_bot.errors import TransportDenied  # noqa: E402
from merit_room_bot.services.ledger_oracle import LedgerOracle  # noqa: E402


def _forbidden() -> Exception:
    return discord.Forbidden(SimpleNamespace(status=403, reason="Forbidden"), "Missing Permissions")


def _message(**overrides: object) -> SimpleNamespace:
    base = dict(
        id=555,
        content="/verify addr sig",
        type=discord.MessageType.default,
        guild=SimpleNamespace(id=1),
        channel=SimpleNamespace(id=1000),
        author=SimpleNamespace(id=42, name="alice", bot=False),
        webhook_id=None,
    )
    base.update(overrides)
    return SimpleNamespace(**base)


class _FakePartial:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.deleted = False

    async def delete(self) -> None:
        if self.error is not None:
            raise self.error
        self.deleted = True


class _FakeChannel:
    def __init__(self, channel_id: int, partial: _FakePartial | None = None) -> None:
        self.id = channel_id
        self.partial = partial or _FakePartial()
        self.sent: list[str] = []

    async def send(self, text: str) -> SimpleNamespace:
        self.sent.append(text)
        return SimpleNamespace(id=777, channel=self)

    def get_partial_message(self, message_id: int) -> _FakePartial:
        return self.partial


class _FakeUser:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    async def send(self, text: str) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        return SimpleNamespace(id=888, channel=SimpleNamespace(id=4242))


class _FakeClient:
    def __init__(self, channel: _FakeChannel | None = None, user: _FakeUser | None = None) -> None:
        self.channel = channel
        self.user = user
        self.channel_lookups: list[int] = []

    def get_channel(self, channel_id: int) -> _FakeChannel | None:
        self.channel_lookups.append(channel_id)
        return self.channel

    def get_user(self, user_id: int) -> _FakeUser | None:
        return self.user


def test_to_inbound_converts_guild_text_message() -> None:
    inbound = to_inbound(_message())

    assert inbound.identity_id == "42"
    assert inbound.display_name == "alice"
    assert inbound.chat == ChatRef(chat_id="1000", is_group=True)
    assert inbound.ref.message_id == "555"
    assert inbound.tokens == ["/verify", "addr", "sig"]
    assert inbound.is_textual is True


def test_to_inbound_marks_join_events_and_private_chats() -> None:
    join = to_inbound(_message(content="", type=discord.MessageType.new_member))
    private = to_inbound(_message(guild=None, channel=SimpleNamespace(id=9)))

    assert join.is_textual is False
    assert private.chat.is_group is False


def test_truncate_keeps_short_text_and_cuts_long_text() -> None:
    assert truncate("short") == "short"
    long_text = "\n".join(f"line {n}" for n in range(800))
    cut = truncate(long_text, limit=200)
    assert len(cut) <= 200
    assert cut.endswith("...")


def test_delete_message_reports_failures_instead_of_raising() -> None:
    ok_channel = _FakeChannel(1000)
    transport = DiscordTransport(_FakeClient(channel=ok_channel), timeout_seconds=1)
    room_ref = MessageRef(chat=ChatRef("1000", True), message_id="5")

    assert asyncio.run(transport.delete_message(room_ref)) is True
    assert ok_channel.partial.deleted is True

    denied = DiscordTransport(_FakeClient(channel=_FakeChannel(1000, _FakePartial(_forbidden()))), timeout_seconds=1)
    assert asyncio.run(denied.delete_message(room_ref)) is False

    client = _FakeClient(channel=ok_channel)
    private = DiscordTransport(client, timeout_seconds=1)
    assert asyncio.run(private.delete_message(MessageRef(chat=ChatRef("9", False), message_id="5"))) is False
    assert client.channel_lookups == []


def test_send_direct_maps_forbidden_to_denied() -> None:
    transport = DiscordTransport(_FakeClient(user=_FakeUser(_forbidden())), timeout_seconds=1)
    with pytest.raises(TransportDenied):
        asyncio.run(transport.send_direct("42", "hello"))

    working = DiscordTransport(_FakeClient(user=_FakeUser()), timeout_seconds=1)
    ref = asyncio.run(working.send_direct("42", "hello"))
    assert ref == MessageRef(chat=ChatRef("4242", False), message_id="888")


def test_send_message_returns_ref_in_target_chat() -> None:
    channel = _FakeChannel(1000)
    transport = DiscordTransport(_FakeClient(channel=channel), timeout_seconds=1)
    chat = ChatRef("1000", True)

    ref = asyncio.run(transport.send_message(chat, "hi"))

    assert ref == MessageRef(chat=chat, message_id="777")
    assert channel.sent == ["hi"]


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        discord_token="token",
        room_channel_id=1000,
        merit_threshold=30000.0,
        stale_after_ms=86400000,
        verify_challenge_word="verify",
        cleanup_delay_seconds=30.0,
        transport_timeout_seconds=5.0,
        recheck_sweep_seconds=0,
        ledger_api_url="http://127.0.0.1:5005",
        ledger_api_token="",
        ledger_timeout_seconds=5,
        store_backend="sqlite",
        sqlite_path=tmp_path / "bot.db",
        store_postgres_dsn="",
        log_level="INFO",
    )


class _FakeRouter:
    def __init__(self) -> None:
        self.dispatched: list[object] = []

    async def dispatch(self, message: object) -> None:
        self.dispatched.append(message)


class _FakeStore:
    backend_name = "fake"

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.closed = False

    async def init(self) -> None:
        self.calls.append("init")

    async def ping(self) -> None:
        self.calls.append("ping")

    async def close(self) -> None:
        self.closed = True


class _FakeOracle:
    def __init__(self) -> None:
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        return None


def test_on_message_skips_bots_and_routes_people(tmp_path: Path) -> None:
    bot = MeritRoomDiscordBot(
        settings=_settings(tmp_path),
        store=_FakeStore(),
        oracle=LedgerOracle("http://127.0.0.1:5005", timeout_seconds=5),
    )
    router = _FakeRouter()
    bot.router = router

    asyncio.run(bot.on_message(_message(author=SimpleNamespace(id=1, name="other-bot", bot=True))))
    asyncio.run(bot.on_message(_message(webhook_id=3)))
    asyncio.run(bot.on_message(_message()))

    assert len(router.dispatched) == 1
    assert router.dispatched[0].identity_id == "42"


def test_close_runs_every_shutdown_step(tmp_path: Path) -> None:
    store = _FakeStore()
    bot = MeritRoomDiscordBot(
        settings=_settings(tmp_path),
        store=store,
        oracle=LedgerOracle("http://127.0.0.1:5005", timeout_seconds=5),
    )

    asyncio.run(bot.close())

    assert store.closed is True
    assert bot.sweep_task is None


def test_setup_hook_prepares_store_and_oracle(tmp_path: Path) -> None:
    store = _FakeStore()
    oracle = _FakeOracle()
    bot = MeritRoomDiscordBot(settings=_settings(tmp_path), store=store, oracle=oracle)

    asyncio.run(bot.setup_hook())

    assert store.calls == ["init", "ping"]
    assert oracle.started is True
    assert bot.sweep_task is None
