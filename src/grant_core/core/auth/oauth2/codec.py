# GrantCore - Delegated Access Authorization Server
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Storage forms for opaque credentials.

Every secret that must be matched later gets two derived values:

* a **fingerprint** (SHA-256 hex) that is deterministic and indexed, used
  only to find the candidate record;
* a **verification hash** (salted argon2) checked after the fingerprint
  matches, which is the actual proof of possession.
"""

import hashlib
import secrets

from beartype import beartype
from passlib.context import CryptContext

from ...config import Settings

CODE_BYTES = 32


class TokenCodec:
    """Fingerprint and adaptive-hash helpers for tokens and client secrets."""

    def __init__(self, settings: Settings) -> None:
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__time_cost=settings.token_hash_time_cost,
            argon2__memory_cost=settings.token_hash_memory_cost,
        )

    @staticmethod
    @beartype
    def fingerprint(secret: str) -> str:
        """Deterministic lookup key. Never proof of possession on its own."""
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()

    @staticmethod
    @beartype
    def generate_code() -> str:
        """Random authorization code, 32 bytes hex encoded."""
        return secrets.token_hex(CODE_BYTES)

    @beartype
    def verification_hash(self, secret: str) -> str:
        """Salted adaptive hash of ``secret``."""
        return self._context.hash(secret)

    @beartype
    def verify(self, secret: str, stored_hash: str | None) -> bool:
        """Check ``secret`` against a stored hash.

        Malformed or missing hashes verify as False.
        """
        if not stored_hash:
            return False
        try:
            return bool(self._context.verify(secret, stored_hash))
        except (ValueError, TypeError):
            return False

    # Client secrets share the token hashing parameters.
    hash_secret = verification_hash
    verify_secret = verify
