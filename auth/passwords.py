"""
auth/passwords.py -- Argon2id password hashing with fixed, format-compatible parameters.

Stored credentials must stay byte-compatible with the hashes already in the
person table:

    $argon2id$v=19$m=19456,t=2,p=1$<salt b64>$<hash b64>

argon2-cffi emits exactly this PHC string format. The cost parameters are
fixed constants below; verify() always uses the parameters embedded in the
credential, so a hash produced under older settings still verifies.

Timing equalization: DUMMY_HASH is computed once at import so signin can run
one Argon2 verification even when the account does not exist (see
auth/accounts.py).
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher as _Argon2Hasher
from argon2 import Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from auth.errors import InternalError

logger = logging.getLogger("slatehub.auth.passwords")

MEMORY_COST_KIB = 19456
TIME_COST = 2
PARALLELISM = 1
HASH_LEN = 32
SALT_LEN = 16


class PasswordHasher:
    """Hash and verify passwords as Argon2id credentials."""

    def __init__(self) -> None:
        try:
            self._argon2 = _Argon2Hasher(
                time_cost=TIME_COST,
                memory_cost=MEMORY_COST_KIB,
                parallelism=PARALLELISM,
                hash_len=HASH_LEN,
                salt_len=SALT_LEN,
                type=Type.ID,
            )
        except (TypeError, ValueError) as exc:
            raise InternalError(f"Invalid Argon2 parameters: {exc}") from exc

    def hash(self, password: str) -> str:
        """Return a fresh encoded credential. A new random salt is drawn on every call."""
        try:
            return self._argon2.hash(password)
        except HashingError as exc:
            raise InternalError(f"Failed to hash password: {exc}") from exc

    def verify(self, password: str, credential: str) -> bool:
        """Return True if password matches credential, False on mismatch.

        Raises InternalError only when the credential itself cannot be parsed.
        """
        try:
            return self._argon2.verify(credential, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError, UnicodeEncodeError) as exc:
            raise InternalError(f"Invalid password hash format: {exc}") from exc

    def needs_rehash(self, credential: str) -> bool:
        """True when the credential was produced with parameters other than ours."""
        try:
            return self._argon2.check_needs_rehash(credential)
        except InvalidHashError as exc:
            raise InternalError(f"Invalid password hash format: {exc}") from exc


_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, credential: str) -> bool:
    return _hasher.verify(password, credential)


def needs_rehash(credential: str) -> bool:
    return _hasher.needs_rehash(credential)


DUMMY_HASH: str = hash_password("slatehub_timing_dummy")
