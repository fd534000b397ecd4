"""
Generate a fresh issuer key pair for the scope probe.

Infrastructure script — prints the two settings the composition root needs,
ready to append to .env:

  ISSUER__PUBLIC_ID=A...
  ISSUER__SEED=SA...

The seed is private signing material: keep it out of source control.

Usage:
  python scripts/generate_issuer_keys.py >> .env
"""

from __future__ import annotations

from topic_scope.adapters.ed25519_keys import Ed25519KeyProvider
from topic_scope.domain.models import KeyKind


def main() -> None:
    key_pair = Ed25519KeyProvider().generate_key_pair(KeyKind.ISSUER)
    print(f"ISSUER__PUBLIC_ID={key_pair.public_id}")  # noqa: T201
    print(f"ISSUER__SEED={key_pair.seed}")  # noqa: T201


if __name__ == "__main__":
    main()
