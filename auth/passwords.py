"""
auth/passwords.py -- bcrypt password hashing with timing equalization.

Security design decisions:
  bcrypt directly, no passlib wrapper. passlib's wrap-bug detection builds a
  password longer than 72 bytes, which bcrypt 4.x rejects with an explicit
  error. Direct bcrypt usage is simpler and actively maintained.

  Cost factor: 10 rounds by default (BCRYPT_ROUNDS). Tests construct a
  PasswordHasher with the minimum of 4 so the suite stays fast.

  72-byte window: bcrypt only ever reads the first 72 bytes of a secret.
  Recent bcrypt releases raise ValueError instead of truncating, so both
  hash() and verify() cut the UTF-8 encoding to 72 bytes themselves.

  Timing equalization: verify_dummy() runs one full bcrypt comparison
  against a fixed digest. The login path calls it when the e-mail matches
  no account, so the response time does not reveal whether an account
  exists.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Stateless salted one-way hashing for credential secrets."""

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than the ones after it.
        self._dummy_hash = self.hash("usergate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of plain with a fresh salt."""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches hashed. Never raises; a malformed digest is a mismatch."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one bcrypt comparison for an attempt that has no real digest to check."""
        self.verify(plain, self._dummy_hash)
