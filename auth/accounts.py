"""
auth/accounts.py -- Account flows built on the auth primitives.

  signup            create a person, issue a session token, mail an
                    email-verification code.
  signin            username-or-email + password -> session token.
  confirm_email     consume an email_verification code.
  request_password_reset / reset_password
                    mail a password_reset code, then consume it and replace
                    the credential wholesale.

Security:
  signin always runs exactly one Argon2 verification. Unknown accounts are
  checked against DUMMY_HASH so response time does not reveal whether a
  username exists, and both failure cases raise the same Unauthorized.

  request_password_reset is silent for unknown emails, and reset_password
  reports an unknown email as a not_found code, so neither endpoint can be
  used to enumerate accounts.
"""

from __future__ import annotations

import logging

from auth.errors import ConflictError, FailureReason, Unauthorized, VerificationFailure
from auth.mailer import Mailer
from auth.models import Person, Purpose
from auth.passwords import DUMMY_HASH, hash_password, needs_rehash, verify_password
from auth.store import PersonStore
from auth.tokens import TokenService
from auth.verification import VerificationCodeService

logger = logging.getLogger("slatehub.auth.accounts")

_BAD_CREDENTIALS = "Invalid username or password."


class AccountService:
    def __init__(
        self,
        people: PersonStore,
        codes: VerificationCodeService,
        tokens: TokenService,
        mailer: Mailer,
    ) -> None:
        self.people = people
        self.codes = codes
        self.tokens = tokens
        self.mailer = mailer

    def signup(self, username: str, email: str, password: str, name: str | None = None) -> tuple[Person, str]:
        """Create an account and return (person, session token)."""
        username = username.strip().lower()
        email = email.strip()
        if self.people.get_by_username(username) is not None:
            raise ConflictError("Username already exists.")
        if self.people.get_by_email(email) is not None:
            raise ConflictError("Email already exists.")

        person = Person(username=username, email=email, password_hash=hash_password(password), name=name)
        person.id = self.people.create_person(person)
        logger.info("Created person %s (%s)", person.id, username)

        self._send_code(person, Purpose.EMAIL_VERIFICATION)
        token = self.tokens.issue(person.id, person.username, person.email)
        return person, token

    def signin(self, identifier: str, password: str) -> tuple[Person, str]:
        """Authenticate and return (person, session token). Raises Unauthorized on any failure."""
        person = self.people.get_by_identifier(identifier.strip())
        if person is None:
            # Equalize timing -- do NOT return before running Argon2
            verify_password(password, DUMMY_HASH)
            logger.debug("Signin failed: no account for %r", identifier)
            raise Unauthorized(_BAD_CREDENTIALS)
        if not verify_password(password, person.password_hash):
            logger.debug("Signin failed: wrong password for %s", person.username)
            raise Unauthorized(_BAD_CREDENTIALS)

        if needs_rehash(person.password_hash):
            person.password_hash = hash_password(password)
            self.people.update_password(person.id, person.password_hash)
            logger.info("Rehashed credential for %s", person.id)

        return person, self.tokens.issue(person.id, person.username, person.email)

    def confirm_email(self, subject_id: str, code: str) -> None:
        self.codes.verify(subject_id, code, Purpose.EMAIL_VERIFICATION)
        self.people.mark_email_verified(subject_id)
        logger.info("Marked email as verified for %s", subject_id)

    def resend_email_verification(self, subject_id: str) -> bool:
        """Send a new email code. Returns False when the email is already verified."""
        person = self.people.get_by_id(subject_id)
        if person is None or person.is_email_verified:
            return False
        self._send_code(person, Purpose.EMAIL_VERIFICATION)
        return True

    def request_password_reset(self, email: str) -> None:
        person = self.people.get_by_email(email.strip())
        if person is None:
            logger.debug("Password reset requested for unknown email")
            return
        self._send_code(person, Purpose.PASSWORD_RESET)

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        person = self.people.get_by_email(email.strip())
        if person is None:
            raise VerificationFailure(FailureReason.NOT_FOUND)
        new_hash = hash_password(new_password)

        def replace_credential(conn) -> None:
            self.people.update_password(person.id, new_hash, conn=conn)

        # Code and credential change commit together; a failed update leaves the code usable.
        self.codes.verify(person.id, code, Purpose.PASSWORD_RESET, on_consume=replace_credential)
        logger.info("Password reset for %s", person.id)

    def _send_code(self, person: Person, purpose: Purpose) -> None:
        code = self.codes.generate(person.id, purpose)
        self.mailer.send_verification_code(person.email, code, purpose)
