"""
Credential codec — canonical claims, token form, and the creds envelope.

Three representations of one Credential:

  1. canonical claims   compact, key-sorted UTF-8 JSON of every field but the
                        signature. This exact byte sequence is what gets
                        signed, and the verifier rebuilds it from the fields.
  2. token              base64url(header).base64url(claims).base64url(signature)
                        for handing a credential to a transport.
  3. creds envelope     the token and the subject seed, each framed by
                        BEGIN/END marker lines, as read by transport
                        authenticators.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import re
from typing import Any

from topic_scope.domain.models import Credential, Permission, PermissionSet
from topic_scope.railway import ErrorCode, Result

TOKEN_HEADER = {"alg": "ed25519", "typ": "scoped-credential"}

CREDENTIAL_BLOCK = "USER CREDENTIAL"
SEED_BLOCK = "USER SEED"


# ─────────────────────── Canonical claims ───────────────────────


def _permission_to_dict(permission: Permission) -> dict[str, list[str]]:
    return {"allow": list(permission.allow), "deny": list(permission.deny)}


def permissions_to_dict(permissions: PermissionSet) -> dict[str, Any]:
    return {
        "pub": _permission_to_dict(permissions.publish),
        "sub": _permission_to_dict(permissions.subscribe),
    }


def _claims(credential: Credential, include_id: bool) -> dict[str, Any]:
    claims: dict[str, Any] = {
        "iat": credential.issued_at,
        "exp": credential.expires_at,
        "iss": credential.issuer_public_id,
        "sub": credential.subject_public_id,
        "name": credential.subject,
        "permissions": permissions_to_dict(credential.permissions),
    }
    if include_id:
        claims["jti"] = credential.credential_id
    return claims


def _dumps(claims: dict[str, Any]) -> bytes:
    return json.dumps(claims, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def canonical_claims(credential: Credential) -> bytes:
    """The signed payload: every field except the signature, deterministically encoded."""
    return _dumps(_claims(credential, include_id=True))


def compute_credential_id(credential: Credential) -> str:
    """SHA-256 over the claims without the id itself, base32 without padding."""
    digest = hashlib.sha256(_dumps(_claims(credential, include_id=False))).digest()
    return base64.b32encode(digest).decode("ascii").rstrip("=")


# ─────────────────────── Token ───────────────────────


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def encode_token(credential: Credential) -> str:
    header = _b64encode(_dumps(TOKEN_HEADER))
    return f"{header}.{_b64encode(canonical_claims(credential))}.{_b64encode(credential.signature)}"


def _str_list(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{where} must be a list of strings")
    return tuple(value)


def _permission_from_dict(value: Any, where: str) -> Permission:
    if value is None:
        return Permission()
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be an object")
    return Permission(
        allow=_str_list(value.get("allow"), f"{where}.allow"),
        deny=_str_list(value.get("deny"), f"{where}.deny"),
    )


def _require(claims: dict[str, Any], key: str, kind: type) -> Any:
    value = claims.get(key)
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValueError(f"claim {key!r} missing or not {kind.__name__}")
    return value


def credential_from_claims(claims: Any, signature: bytes) -> Credential:
    """Build a Credential from decoded claims. Raises ValueError when a claim is missing."""
    if not isinstance(claims, dict):
        raise ValueError("claims must be a JSON object")
    permissions = claims.get("permissions")
    if not isinstance(permissions, dict):
        raise ValueError("claim 'permissions' missing or not an object")
    return Credential(
        subject=_require(claims, "name", str),
        subject_public_id=_require(claims, "sub", str),
        issuer_public_id=_require(claims, "iss", str),
        permissions=PermissionSet(
            publish=_permission_from_dict(permissions.get("pub"), "permissions.pub"),
            subscribe=_permission_from_dict(permissions.get("sub"), "permissions.sub"),
        ),
        issued_at=_require(claims, "iat", int),
        expires_at=_require(claims, "exp", int),
        credential_id=_require(claims, "jti", str),
        signature=signature,
    )


def _parse_token(token: str) -> Credential:
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("token must have three dot-separated parts")
    header = json.loads(_b64decode(parts[0]))
    if header != TOKEN_HEADER:
        raise ValueError(f"unsupported token header: {header!r}")
    claims = json.loads(_b64decode(parts[1]))
    return credential_from_claims(claims, _b64decode(parts[2]))


def decode_token(token: str) -> Result[Credential]:
    """
    Parse a token back into a Credential without verifying it.

    Returns Result.failure(MALFORMED_CREDENTIAL) for anything undecodable.
    Signature and expiry are the verifier's job.
    """
    return Result.from_computation(
        lambda: _parse_token(token),
        ErrorCode.MALFORMED_CREDENTIAL,
        "Credential token could not be decoded",
        catch=(ValueError, binascii.Error, AttributeError, TypeError, RecursionError),
    )


# ─────────────────────── Creds envelope ───────────────────────


def _block(label: str, body: str) -> str:
    return f"-----BEGIN {label}-----\n{body}\n------END {label}------\n"


def render_creds(token: str, seed: str) -> str:
    """Frame a token and its subject seed into the two-block creds text."""
    return f"{_block(CREDENTIAL_BLOCK, token)}\n{_block(SEED_BLOCK, seed)}"


def _block_pattern(label: str) -> re.Pattern[str]:
    return re.compile(
        rf"-{{3,}}BEGIN {re.escape(label)}-{{3,}}\r?\n\s*([\w\-.=]+)\s*\r?\n-{{3,}}END {re.escape(label)}-{{3,}}"
    )


_CREDENTIAL_RE = _block_pattern(CREDENTIAL_BLOCK)
_SEED_RE = _block_pattern(SEED_BLOCK)


def parse_creds(text: str) -> Result[tuple[str, str]]:
    """Extract (token, seed) from creds text; MALFORMED_CREDENTIAL if a block is missing."""
    token_match = _CREDENTIAL_RE.search(text) if isinstance(text, str) else None
    seed_match = _SEED_RE.search(text) if isinstance(text, str) else None
    if token_match is None or seed_match is None:
        return Result.failure(
            ErrorCode.MALFORMED_CREDENTIAL,
            "Creds text must contain a credential block and a seed block",
        )
    return Result.success((token_match.group(1), seed_match.group(1)))
