from __future__ import annotations


class MeritBotError(Exception):
    """Base class for every error raised by the merit room bot."""


class InputMalformed(MeritBotError):
    pass


class InvalidAddressError(InputMalformed):
    pass


class ProofInvalid(MeritBotError):
    pass


class MalformedSignature(ProofInvalid):
    pass


class ClaimConflict(MeritBotError):
    def __init__(self, address: str, owner_identity_id: str, owner_label: str = "") -> None:
        self.address = address
        self.owner_identity_id = owner_identity_id
        self.owner_label = owner_label or owner_identity_id
        super().__init__(f"Address {address} is already claimed by {self.owner_label}")


class AddressAlreadyClaimed(MeritBotError):
    """Raised by a store when the unique claimed-address index rejects a write."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Address {address} is already claimed by another record")


class RecordNotFound(MeritBotError):
    pass


class NotOwner(MeritBotError):
    pass


class StoreFailure(MeritBotError):
    pass


class OracleFailure(MeritBotError):
    pass


class TransportError(MeritBotError):
    pass


class TransportDenied(TransportError):
    """The platform refused a send or delete (blocked bot, missing permission)."""
