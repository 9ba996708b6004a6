"""Unit tests for auth/accounts.py -- signup, signin, email confirmation, password reset.

Covers:
- signup stores an Argon2id credential, issues a valid token, mails an email code
- duplicate username/email -> ConflictError
- signin by username or email; wrong password / unknown account -> same Unauthorized
- signin upgrades credentials hashed with other parameters
- confirm_email marks the person verified and consumes the code
- password reset: silent for unknown email, code replaces the credential once
- a failed credential update leaves the reset code unused
"""

import argon2
import pytest
from sqlalchemy.exc import OperationalError

from auth.accounts import AccountService
from auth.errors import ConflictError, DatabaseError, FailureReason, Unauthorized, VerificationFailure
from auth.models import Person, Purpose
from auth.passwords import verify_password
from auth.tokens import TokenService


@pytest.fixture
def accounts(person_store, codes, clock, mailer) -> AccountService:
    tokens = TokenService("s" * 40, 3600, clock=clock)
    return AccountService(person_store, codes, tokens, mailer)


@pytest.fixture
def chris(accounts):
    person, _token = accounts.signup("Chris", "chris@example.com", "correct-horse-battery")
    return person


class TestSignup:
    def test_signup_creates_person_and_token(self, accounts, person_store):
        person, token = accounts.signup("Chris", "chris@example.com", "correct-horse-battery", name="Chris P.")
        stored = person_store.get_by_id(person.id)
        assert stored.username == "chris"
        assert stored.name == "Chris P."
        assert stored.password_hash.startswith("$argon2id$v=19$m=19456,t=2,p=1$")
        assert verify_password("correct-horse-battery", stored.password_hash)

        claims = accounts.tokens.validate(token)
        assert claims.subject_id == person.id
        assert claims.username == "chris"
        assert claims.email == "chris@example.com"

    def test_signup_mails_email_verification_code(self, accounts, mailer, codes):
        person, _ = accounts.signup("chris", "chris@example.com", "correct-horse-battery")
        code = mailer.last_code("chris@example.com", Purpose.EMAIL_VERIFICATION)
        assert codes.find_active(person.id, Purpose.EMAIL_VERIFICATION).code == code

    def test_duplicate_username(self, accounts, chris):
        with pytest.raises(ConflictError, match="Username"):
            accounts.signup("CHRIS", "other@example.com", "correct-horse-battery")

    def test_duplicate_email(self, accounts, chris):
        with pytest.raises(ConflictError, match="Email"):
            accounts.signup("someone", "chris@example.com", "correct-horse-battery")


class TestSignin:
    def test_signin_by_username_and_email(self, accounts, chris):
        for identifier in ("chris", "Chris", "chris@example.com"):
            person, token = accounts.signin(identifier, "correct-horse-battery")
            assert person.id == chris.id
            assert accounts.tokens.validate(token).subject_id == chris.id

    def test_wrong_password_and_unknown_user_fail_identically(self, accounts, chris):
        with pytest.raises(Unauthorized) as wrong:
            accounts.signin("chris", "wrong")
        with pytest.raises(Unauthorized) as unknown:
            accounts.signin("nobody", "wrong")
        assert str(wrong.value) == str(unknown.value)

    def test_unknown_user_still_runs_argon2(self, accounts, monkeypatch):
        calls = []
        real_verify = verify_password

        def counting_verify(password, credential):
            calls.append(credential)
            return real_verify(password, credential)

        monkeypatch.setattr("auth.accounts.verify_password", counting_verify)
        with pytest.raises(Unauthorized):
            accounts.signin("nobody", "whatever")
        assert len(calls) == 1

    def test_signin_rehashes_legacy_parameters(self, accounts, person_store):
        legacy = argon2.PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1).hash("old-password")
        person_id = person_store.create_person(
            Person(username="legacy", email="legacy@example.com", password_hash=legacy)
        )
        accounts.signin("legacy", "old-password")
        upgraded = person_store.get_by_id(person_id).password_hash
        assert "m=19456,t=2,p=1" in upgraded
        assert verify_password("old-password", upgraded)


class TestEmailConfirmation:
    def test_confirm_email(self, accounts, chris, mailer, person_store):
        code = mailer.last_code("chris@example.com", Purpose.EMAIL_VERIFICATION)
        accounts.confirm_email(chris.id, code)
        assert person_store.is_email_verified(chris.id)
        with pytest.raises(VerificationFailure) as excinfo:
            accounts.confirm_email(chris.id, code)
        assert excinfo.value.reason is FailureReason.ALREADY_USED

    def test_resend_supersedes_previous_code(self, accounts, chris, mailer, monkeypatch):
        first = mailer.last_code("chris@example.com", Purpose.EMAIL_VERIFICATION)
        monkeypatch.setattr("auth.verification.generate_code", lambda: "999999" if first != "999999" else "888888")
        assert accounts.resend_email_verification(chris.id) is True
        second = mailer.last_code("chris@example.com", Purpose.EMAIL_VERIFICATION)
        assert second != first
        with pytest.raises(VerificationFailure):
            accounts.confirm_email(chris.id, first)
        accounts.confirm_email(chris.id, second)
        assert accounts.resend_email_verification(chris.id) is False


class TestPasswordReset:
    def test_reset_replaces_credential(self, accounts, chris, mailer):
        accounts.request_password_reset("chris@example.com")
        code = mailer.last_code("chris@example.com", Purpose.PASSWORD_RESET)

        accounts.reset_password("chris@example.com", code, "new-password-123")
        accounts.signin("chris", "new-password-123")
        with pytest.raises(Unauthorized):
            accounts.signin("chris", "correct-horse-battery")

        with pytest.raises(VerificationFailure) as excinfo:
            accounts.reset_password("chris@example.com", code, "another-password")
        assert excinfo.value.reason is FailureReason.ALREADY_USED

    def test_failed_credential_update_keeps_the_code(self, accounts, chris, mailer, person_store, monkeypatch):
        accounts.request_password_reset("chris@example.com")
        code = mailer.last_code("chris@example.com", Purpose.PASSWORD_RESET)

        def broken_update(person_id, password_hash, conn=None):
            raise OperationalError("UPDATE person", {}, Exception("database is locked"))

        with monkeypatch.context() as patch:
            patch.setattr(person_store, "update_password", broken_update)
            with pytest.raises(DatabaseError):
                accounts.reset_password("chris@example.com", code, "new-password-123")

        accounts.signin("chris", "correct-horse-battery")
        accounts.reset_password("chris@example.com", code, "new-password-123")
        accounts.signin("chris", "new-password-123")

    def test_unknown_email_is_silent(self, accounts, mailer):
        accounts.request_password_reset("nobody@example.com")
        assert mailer.sent == []

    def test_reset_for_unknown_email_reports_not_found(self, accounts):
        with pytest.raises(VerificationFailure) as excinfo:
            accounts.reset_password("nobody@example.com", "123456", "new-password-123")
        assert excinfo.value.reason is FailureReason.NOT_FOUND

    def test_expired_reset_code(self, accounts, chris, mailer, clock):
        accounts.request_password_reset("chris@example.com")
        code = mailer.last_code("chris@example.com", Purpose.PASSWORD_RESET)
        clock.advance(60 * 60 + 1)
        with pytest.raises(VerificationFailure) as excinfo:
            accounts.reset_password("chris@example.com", code, "new-password-123")
        assert excinfo.value.reason is FailureReason.EXPIRED
