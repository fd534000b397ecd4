"""
Ed25519 key provider — implements the KeyProvider port with PyCA cryptography.

Key material is encoded the way NATS nkeys encode it, so ids are
self-describing and checksummed:

  public id = base32( prefix byte | 32-byte public key | crc16 )      → "A…" / "U…"
  seed      = base32( seed prefix (2 bytes) | 32-byte seed | crc16 )  → "SA…" / "SU…"

The first base32 character of a public id names its role (A = issuer,
U = subject), and a seed carries the same role in its second character.
CRC16 is CRC-16/XMODEM, stored little-endian; base32 padding is stripped.

No I/O: randomness comes from the OS via cryptography's key generation.
"""

from __future__ import annotations

import base64
import binascii

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from topic_scope.domain.models import KeyKind, KeyPair
from topic_scope.railway import ErrorCode, Result

log = structlog.get_logger()

_PREFIX_SEED = 18 << 3
_PREFIXES: dict[KeyKind, int] = {
    KeyKind.ISSUER: 0,  # "A"
    KeyKind.SUBJECT: 20 << 3,  # "U"
}
_KINDS_BY_PREFIX = {prefix: kind for kind, prefix in _PREFIXES.items()}
_RAW_KEY_SIZE = 32


# ─────────────────────── Encoding helpers ───────────────────────


def crc16(data: bytes) -> int:
    """CRC-16/XMODEM (poly 0x1021, init 0)."""
    return binascii.crc_hqx(data, 0)


def _encode(prefix: bytes, raw: bytes) -> str:
    body = prefix + raw
    checksum = crc16(body).to_bytes(2, "little")
    return base64.b32encode(body + checksum).decode("ascii").rstrip("=")


def _decode(text: str) -> bytes:
    """Strip the checksum after validating it. Raises ValueError on any defect."""
    padded = text + "=" * (-len(text) % 8)
    data = base64.b32decode(padded.encode("ascii"))
    if len(data) < 3:
        raise ValueError("encoded key too short")
    body, checksum = data[:-2], data[-2:]
    if crc16(body).to_bytes(2, "little") != checksum:
        raise ValueError("checksum mismatch")
    return body


def _encode_public(kind: KeyKind, raw_public: bytes) -> str:
    return _encode(bytes([_PREFIXES[kind]]), raw_public)


def _encode_seed(kind: KeyKind, raw_seed: bytes) -> str:
    prefix = _PREFIXES[kind]
    return _encode(bytes([_PREFIX_SEED | (prefix >> 5), (prefix & 31) << 3]), raw_seed)


def _decode_public(public_id: str) -> tuple[KeyKind, bytes]:
    body = _decode(public_id)
    kind = _KINDS_BY_PREFIX.get(body[0])
    if kind is None or len(body) != 1 + _RAW_KEY_SIZE:
        raise ValueError("not a public id")
    return kind, body[1:]


def _decode_seed(seed: str) -> tuple[KeyKind, bytes]:
    body = _decode(seed)
    if len(body) != 2 + _RAW_KEY_SIZE or body[0] & 0xF8 != _PREFIX_SEED:
        raise ValueError("not a seed")
    kind = _KINDS_BY_PREFIX.get(((body[0] & 7) << 5) | (body[1] >> 3))
    if kind is None:
        raise ValueError("unknown seed role")
    return kind, body[2:]


def _raw_public(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


# ─────────────────────── Adapter ───────────────────────


class Ed25519KeyProvider:
    """
    Generate, load, sign and verify with Ed25519 keys.

    Implements the KeyProvider port. Stateless: every method is a pure
    function of its arguments, so one instance can be shared across threads.
    """

    def generate_key_pair(self, kind: KeyKind) -> KeyPair:
        private_key = Ed25519PrivateKey.generate()
        raw_seed = private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        key_pair = KeyPair(
            kind=kind,
            public_id=_encode_public(kind, _raw_public(private_key)),
            seed=_encode_seed(kind, raw_seed),
        )
        log.debug("key_pair.generated", kind=kind.value, public_id=key_pair.public_id)
        return key_pair

    def key_pair_from_seed(self, seed: str) -> Result[KeyPair]:
        """
        Rebuild a KeyPair from its encoded seed (e.g. an issuer seed from config).

        Returns Result.failure(INVALID_IDENTITY) for anything that is not a
        checksummed seed of a known role.
        """
        return Result.from_computation(
            lambda: self._load_seed(seed),
            ErrorCode.INVALID_IDENTITY,
            "Seed could not be decoded",
            catch=(ValueError, binascii.Error, TypeError),
        )

    def _load_seed(self, seed: str) -> KeyPair:
        kind, raw_seed = _decode_seed(seed)
        private_key = Ed25519PrivateKey.from_private_bytes(raw_seed)
        return KeyPair(kind=kind, public_id=_encode_public(kind, _raw_public(private_key)), seed=seed)

    def public_id_kind(self, public_id: str) -> KeyKind | None:
        """Role encoded in a public id, or None when the id is not valid."""
        try:
            kind, _ = _decode_public(public_id)
        except (ValueError, binascii.Error, TypeError, AttributeError):
            return None
        return kind

    def sign(self, seed: str, payload: bytes) -> bytes:
        """Sign `payload`. Raises ValueError when `seed` is not a valid seed."""
        _, raw_seed = _decode_seed(seed)
        return Ed25519PrivateKey.from_private_bytes(raw_seed).sign(payload)

    def verify(self, public_id: str, payload: bytes, signature: bytes) -> bool:
        try:
            _, raw_public = _decode_public(public_id)
            Ed25519PublicKey.from_public_bytes(raw_public).verify(signature, payload)
        except (InvalidSignature, ValueError, binascii.Error, TypeError, AttributeError):
            return False
        return True
