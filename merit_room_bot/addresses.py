from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .errors import InvalidAddressError


CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATORS = (
    0x98F2BC8E61,
    0x79B76D99E2,
    0xF33E5FB3C4,
    0xAE2EABE2A8,
    0x1E4F43E470,
)

# cash prefix -> token-ledger prefix, per network
NETWORK_PREFIXES: dict[str, str] = {
    "bitcoincash": "simpleledger",
    "bchtest": "slptest",
    "bchreg": "slpreg",
}
_TOKEN_TO_CASH = {token: cash for cash, token in NETWORK_PREFIXES.items()}
_KNOWN_PREFIXES = tuple(NETWORK_PREFIXES) + tuple(_TOKEN_TO_CASH)

_HASH_SIZES = {20: 0, 24: 1, 28: 2, 32: 3, 40: 4, 48: 5, 56: 6, 64: 7}
_SIZE_BITS_TO_LEN = {bits: size for size, bits in _HASH_SIZES.items()}

KIND_P2PKH = 0
KIND_P2SH = 1


@dataclass(frozen=True, slots=True)
class DecodedAddress:
    prefix: str
    kind: int
    hash_bytes: bytes

    @property
    def cash_prefix(self) -> str:
        return _TOKEN_TO_CASH.get(self.prefix, self.prefix)

    @property
    def token_prefix(self) -> str:
        return NETWORK_PREFIXES[self.cash_prefix]


def _polymod(values: Iterable[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 35
        checksum = ((checksum & 0x07FFFFFFFF) << 5) ^ value
        for index, generator in enumerate(_GENERATORS):
            if top & (1 << index):
                checksum ^= generator
    return checksum ^ 1


def _prefix_expand(prefix: str) -> list[int]:
    return [ord(ch) & 0x1F for ch in prefix] + [0]


def _create_checksum(prefix: str, payload: list[int]) -> list[int]:
    poly = _polymod(_prefix_expand(prefix) + payload + [0] * 8)
    return [(poly >> 5 * (7 - i)) & 0x1F for i in range(8)]


def _verify_checksum(prefix: str, data: list[int]) -> bool:
    return _polymod(_prefix_expand(prefix) + data) == 0


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int] | None:
    acc = 0
    bits = 0
    result: list[int] = []
    max_value = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            return None
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((acc >> bits) & max_value)
    if pad:
        if bits:
            result.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & max_value):
        return None
    return result


def encode_address(prefix: str, kind: int, hash_bytes: bytes) -> str:
    prefix = prefix.lower()
    if prefix not in _KNOWN_PREFIXES:
        raise InvalidAddressError(f"Unknown address prefix: {prefix}")
    size_bits = _HASH_SIZES.get(len(hash_bytes))
    if size_bits is None:
        raise InvalidAddressError(f"Unsupported hash length: {len(hash_bytes)}")
    if kind not in (KIND_P2PKH, KIND_P2SH):
        raise InvalidAddressError(f"Unsupported address kind: {kind}")

    version = (kind << 3) | size_bits
    payload = _convert_bits([version, *hash_bytes], 8, 5, True)
    assert payload is not None
    checksum = _create_checksum(prefix, payload)
    return prefix + ":" + "".join(CHARSET[value] for value in payload + checksum)


def _decode_with_prefix(prefix: str, body: str) -> DecodedAddress:
    try:
        data = [CHARSET.index(ch) for ch in body]
    except ValueError:
        raise InvalidAddressError("Address contains characters outside the base32 alphabet") from None
    if len(data) <= 8:
        raise InvalidAddressError("Address is too short")
    if not _verify_checksum(prefix, data):
        raise InvalidAddressError("Address checksum does not match")

    decoded = _convert_bits(data[:-8], 5, 8, False)
    if not decoded:
        raise InvalidAddressError("Address payload has invalid padding")
    version, hash_bytes = decoded[0], bytes(decoded[1:])
    if version & 0x80:
        raise InvalidAddressError("Address version byte has the reserved bit set")
    expected = _SIZE_BITS_TO_LEN[version & 0x07]
    if len(hash_bytes) != expected:
        raise InvalidAddressError("Address hash length does not match its version byte")
    kind = (version >> 3) & 0x0F
    if kind not in (KIND_P2PKH, KIND_P2SH):
        raise InvalidAddressError(f"Unsupported address kind: {kind}")
    return DecodedAddress(prefix=prefix, kind=kind, hash_bytes=hash_bytes)


def decode_address(text: str) -> DecodedAddress:
    raw = (text or "").strip()
    if not raw:
        raise InvalidAddressError("Address is empty")
    if raw != raw.lower() and raw != raw.upper():
        raise InvalidAddressError("Address mixes upper and lower case")
    raw = raw.lower()

    if ":" in raw:
        prefix, body = raw.split(":", 1)
        if prefix not in _KNOWN_PREFIXES:
            raise InvalidAddressError(f"Unknown address prefix: {prefix}")
        return _decode_with_prefix(prefix, body)

    # Prefix-less form: the checksum tells which network it was built for.
    for prefix in _KNOWN_PREFIXES:
        try:
            return _decode_with_prefix(prefix, raw)
        except InvalidAddressError:
            continue
    raise InvalidAddressError("Address checksum does not match any known prefix")


def normalize_address(text: str) -> str:
    """Return the canonical cash form of a cash or token-ledger address."""
    decoded = decode_address(text)
    return encode_address(decoded.cash_prefix, decoded.kind, decoded.hash_bytes)


def to_token_address(address: str) -> str:
    decoded = decode_address(address)
    return encode_address(decoded.token_prefix, decoded.kind, decoded.hash_bytes)
