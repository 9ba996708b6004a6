"""
auth/verification.py -- Single-use, time-boxed numeric verification codes.

Codes confirm an email address or authorize a password reset. Rules:

  - A code is 6 ASCII digits drawn uniformly from 100000..999999 with the
    secrets module, so it never needs zero-padding.
  - Expiry depends on the purpose (auth.models.CODE_TTL_SECONDS):
    email_verification 24h, password_reset 1h.
  - At most one active (unused, unexpired) code per (subject, purpose):
    generate() deletes prior unused codes and inserts the new one inside a
    single store transaction.
  - used only moves False -> True. mark_used() is conditional on used = 0,
    so two concurrent verify() calls with the same code cannot both succeed.
    Work that must happen exactly when a code is consumed (a password
    change) runs in verify()'s on_consume hook, inside the same transaction.
  - Expiry is lazy: verify() reports an expired code but leaves the row;
    cleanup() removes expired rows and runs from the periodic loop in
    api/main.py or from the CLI, never from request handlers.

Failures surface as VerificationFailure with a distinct reason
(not_found / already_used / expired). Store failures propagate as
DatabaseError without retry.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable

from sqlalchemy.engine import Connection

from auth.errors import FailureReason, VerificationFailure
from auth.models import CODE_TTL_SECONDS, Purpose, VerificationCode
from auth.store import VerificationCodeStore

logger = logging.getLogger("slatehub.auth.verification")

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Return a uniformly random code in CODE_MIN..CODE_MAX as a string."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class VerificationCodeService:
    def __init__(self, store: VerificationCodeStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def generate(self, subject_id: str, purpose: Purpose) -> str:
        """Create a fresh code for (subject, purpose) and return it in plaintext.

        The caller delivers the code out of band (see auth/mailer.py).
        """
        now = self._clock()
        record = VerificationCode(
            subject_id=subject_id,
            code=generate_code(),
            purpose=purpose,
            expires_at=now + CODE_TTL_SECONDS[purpose],
            created_at=now,
        )
        with self._store.transaction() as conn:
            superseded = self._store.delete_unused(conn, subject_id, purpose)
            record.id = self._store.insert_code(conn, record)
        if superseded:
            logger.debug("Superseded %d unused %s code(s) for %s", superseded, purpose, subject_id)
        logger.info("Created %s code for %s", purpose, subject_id)
        return record.code

    def verify(
        self,
        subject_id: str,
        code: str,
        purpose: Purpose,
        on_consume: Callable[[Connection], object] | None = None,
    ) -> None:
        """Consume a code. Returns None on success, raises VerificationFailure otherwise.

        on_consume, if given, runs with the same connection that marks the
        code used. If it raises, the code stays unused and can be retried.
        """
        record = self._store.find_code(subject_id, code, purpose)
        if record is None:
            raise VerificationFailure(FailureReason.NOT_FOUND)
        if record.used:
            raise VerificationFailure(FailureReason.ALREADY_USED)
        if record.is_expired(self._clock()):
            logger.debug("%s code expired for %s", purpose, subject_id)
            raise VerificationFailure(FailureReason.EXPIRED)
        with self._store.transaction() as conn:
            if not self._store.mark_used(record.id, conn=conn):
                # Another request consumed it between the read and the update.
                raise VerificationFailure(FailureReason.ALREADY_USED)
            if on_consume is not None:
                on_consume(conn)
        logger.info("Verified %s code for %s", purpose, subject_id)

    def find_active(self, subject_id: str, purpose: Purpose) -> VerificationCode | None:
        return self._store.find_active_code(subject_id, purpose, self._clock())

    def cleanup(self) -> int:
        """Delete every code whose expiry has passed. Returns the number removed."""
        count = self._store.delete_expired(self._clock())
        if count:
            logger.info("Cleaned up %d expired verification codes", count)
        return count
