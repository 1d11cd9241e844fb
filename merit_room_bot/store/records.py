from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class UserRecord:
    """Verification state of one chat identity."""

    identity_id: str
    display_name: str = ""
    claimed_address: str | None = None
    derived_address: str | None = None
    merit_score: float = 0.0
    is_verified: bool = False
    last_verified_at: datetime | None = None

    @property
    def label(self) -> str:
        name = (self.display_name or "").strip()
        return f"@{name}" if name else f"id: {self.identity_id}"

    def assign_claim(self, claimed_address: str, derived_address: str) -> None:
        self.claimed_address = claimed_address
        self.derived_address = derived_address

    def clear_claim(self) -> None:
        self.claimed_address = None
        self.derived_address = None
        self.is_verified = False
        self.merit_score = 0.0
