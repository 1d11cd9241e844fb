from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from ..errors import AddressAlreadyClaimed, ClaimConflict, NotOwner, RecordNotFound
from ..store.records import UserRecord

logger = logging.getLogger("merit_room_bot")


@dataclass(slots=True)
class ClaimDecision:
    granted: bool
    owner: UserRecord | None = None


class ClaimRegistry:
    """Keeps every address bound to at most one identity.

    Writes to one record are serialized by an identity lock and the
    lookup-then-write of a claim by an address lock. Locks are always taken
    identity first, address second. The store's unique index on the claimed
    address covers writers outside this process.
    """

    def __init__(self, store: Any) -> None:
        self.store = store
        self._address_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._identity_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def address_lock(self, address: str) -> asyncio.Lock:
        return self._address_locks[address]

    def identity_lock(self, identity_id: str) -> asyncio.Lock:
        return self._identity_locks[identity_id]

    async def try_claim(self, address: str, identity_id: str) -> ClaimDecision:
        owner = await self.store.find_by_address(address)
        if owner is None or owner.identity_id == identity_id:
            return ClaimDecision(granted=True, owner=owner)
        return ClaimDecision(granted=False, owner=owner)

    @asynccontextmanager
    async def exclusive_claim(self, address: str, identity_id: str) -> AsyncIterator[ClaimDecision]:
        async with self.identity_lock(identity_id):
            async with self.address_lock(address):
                decision = await self.try_claim(address, identity_id)
                if not decision.granted:
                    owner = decision.owner
                    if owner is None:
                        raise ClaimConflict(address, "", "Another user")
                    raise ClaimConflict(address, owner.identity_id, owner.label)
                yield decision

    async def save_claim(self, record: UserRecord) -> None:
        try:
            await self.store.save(record)
        except AddressAlreadyClaimed:
            owner = await self.store.find_by_address(record.claimed_address or "")
            owner_id = owner.identity_id if owner is not None else ""
            owner_label = owner.label if owner is not None else "Another user"
            raise ClaimConflict(record.claimed_address or "", owner_id, owner_label) from None

    async def revoke(self, identity_id: str, address: str) -> UserRecord:
        async with self.identity_lock(identity_id):
            async with self.address_lock(address):
                owner = await self.store.find_by_address(address)
                if owner is None:
                    raise RecordNotFound(f"No record claims {address}")
                if owner.identity_id != identity_id:
                    raise NotOwner(f"{identity_id} does not own {address}")
                owner.clear_claim()
                await self.store.save(owner)
        logger.info("Identity %s revoked address %s", identity_id, address)
        return owner
