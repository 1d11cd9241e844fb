from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from merit_room_bot.addresses import KIND_P2PKH, encode_address, to_token_address  # noqa: E402
from merit_room_bot.engine.cleanup import SpamCleanupScheduler  # noqa: E402
from merit_room_bot.engine.context import EngineContext, EnginePolicy  # noqa: E402
from merit_room_bot.engine.transport import ChatRef, InboundMessage, MessageRef  # noqa: E402
from merit_room_bot.errors import MalformedSignature, TransportDenied  # noqa: E402
from merit_room_bot.store.store import UserRecordStore  # noqa: E402

ROOM_ID = "1000"
ROOM = ChatRef(chat_id=ROOM_ID, is_group=True)
OTHER_GROUP = ChatRef(chat_id="2000", is_group=True)

_message_ids = itertools.count(1)


def address_for(seed: int) -> str:
    return encode_address("bitcoincash", KIND_P2PKH, bytes([seed % 256]) * 20)


def token_address_for(seed: int) -> str:
    return to_token_address(address_for(seed))


def make_message(
    identity_id: str,
    text: str,
    *,
    chat: ChatRef = ROOM,
    name: str = "",
    is_textual: bool = True,
) -> InboundMessage:
    return InboundMessage(
        ref=MessageRef(chat=chat, message_id=str(next(_message_ids))),
        identity_id=identity_id,
        display_name=name,
        text=text,
        is_textual=is_textual,
    )


def dm_chat(identity_id: str) -> ChatRef:
    return ChatRef(chat_id=f"dm-{identity_id}", is_group=False)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeOracle:
    def __init__(self, merit: float = 35000.0, *, valid: bool = True) -> None:
        self.default_merit = merit
        self.merit_by_address: dict[str, float] = {}
        self.valid = valid
        self.malformed = False
        self.signature_calls: list[tuple[str, str, str]] = []
        self.merit_calls: list[str] = []

    async def validate_signature(self, address: str, proof: str, challenge_word: str) -> bool:
        self.signature_calls.append((address, proof, challenge_word))
        if self.malformed:
            raise MalformedSignature("signature is not base64")
        return self.valid

    async def compute_merit(self, address: str) -> float:
        self.merit_calls.append(address)
        return self.merit_by_address.get(address, self.default_merit)


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[ChatRef, str]] = []
        self.direct: list[tuple[str, str]] = []
        self.deleted: list[MessageRef] = []
        self.deny_direct = False
        self.failing_deletes: set[str] = set()
        self._ids = itertools.count(9000)

    async def send_message(self, chat: ChatRef, text: str) -> MessageRef:
        self.sent.append((chat, text))
        return MessageRef(chat=chat, message_id=str(next(self._ids)))

    async def send_direct(self, identity_id: str, text: str) -> MessageRef:
        if self.deny_direct:
            raise TransportDenied(f"{identity_id} blocked the bot")
        self.direct.append((identity_id, text))
        return MessageRef(chat=dm_chat(identity_id), message_id=str(next(self._ids)))

    async def delete_message(self, ref: MessageRef) -> bool:
        if ref.message_id in self.failing_deletes:
            raise RuntimeError("delete exploded")
        if not ref.chat.is_group:
            return False
        self.deleted.append(ref)
        return True

    def texts_to(self, chat: ChatRef) -> list[str]:
        return [text for target, text in self.sent if target == chat]


async def build_context(
    tmp_path: Path,
    *,
    oracle: FakeOracle | None = None,
    transport: FakeTransport | None = None,
    clock: FakeClock | None = None,
    threshold: float = 30000.0,
    stale_after: timedelta = timedelta(days=1),
    cleanup_delay: float = 3600.0,
) -> EngineContext:
    store = UserRecordStore(tmp_path / "merit.db")
    await store.init()
    transport = transport or FakeTransport()
    return EngineContext(
        policy=EnginePolicy(room_chat_id=ROOM_ID, merit_threshold=threshold, stale_after=stale_after),
        store=store,
        oracle=oracle or FakeOracle(),
        transport=transport,
        scheduler=SpamCleanupScheduler(transport, default_delay=cleanup_delay),
        clock=clock or FakeClock(),
    )
