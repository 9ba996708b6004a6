"""Tests for the slatehub-admin CLI in main.py."""

import json

import pytest

import main as cli
from auth.models import Person, Purpose
from auth.passwords import hash_password, verify_password
from auth.store import PersonStore, VerificationCodeStore, make_engine
from auth.tokens import TokenService
from auth.verification import VerificationCodeService
from core.config import Settings

KEY = "c" * 40


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    configured = Settings(secret_key=KEY, database_url=f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(cli, "get_settings", lambda: configured)
    return configured


def _claims_from(output: str) -> dict:
    start, end = output.index("{"), output.index("}") + 1
    return json.loads(output[start:end])


def test_decode_token_without_check(capsys):
    token = TokenService("x" * 40, 60).issue("person:abc123", "chris", "chris@example.com")
    assert cli.main(["decode-token", token]) == 0
    out = capsys.readouterr().out
    assert "NOT checked" in out
    claims = _claims_from(out)
    assert claims["subject_id"] == "person:abc123"
    assert claims["expires_at"] - claims["issued_at"] == 60


def test_decode_token_garbage(capsys):
    assert cli.main(["decode-token", "not-a-token"]) == 1
    assert "[!]" in capsys.readouterr().out


def test_decode_token_check(settings, capsys):
    good = TokenService(KEY, 60).issue("person:abc123", "chris", "chris@example.com")
    forged = TokenService("x" * 40, 60).issue("person:abc123", "chris", "chris@example.com")

    assert cli.main(["decode-token", good, "--check"]) == 0
    assert _claims_from(capsys.readouterr().out)["username"] == "chris"

    assert cli.main(["decode-token", forged, "--check"]) == 1
    assert "invalid or expired" in capsys.readouterr().out


def test_hash_password(capsys):
    assert cli.main(["hash-password", "--password", "correct-horse-battery"]) == 0
    credential = capsys.readouterr().out.strip()
    assert credential.startswith("$argon2id$")
    assert verify_password("correct-horse-battery", credential)


def test_verify_password(settings, capsys):
    engine = make_engine(settings.database_url)
    PersonStore(engine).create_person(
        Person(username="chris", email="chris@example.com", password_hash=hash_password("correct-horse-battery"))
    )
    engine.dispose()

    assert cli.main(["verify-password", "chris", "--password", "correct-horse-battery"]) == 0
    assert cli.main(["verify-password", "chris", "--password", "wrong"]) == 1
    assert cli.main(["verify-password", "nobody", "--password", "x"]) == 1
    out = capsys.readouterr().out
    assert "SUCCESS" in out
    assert "FAILED" in out
    assert "No person" in out


def test_cleanup_codes(settings, capsys):
    engine = make_engine(settings.database_url)
    expired = VerificationCodeService(VerificationCodeStore(engine), clock=lambda: 0.0)
    expired.generate("person:abc123", Purpose.PASSWORD_RESET)
    engine.dispose()

    assert cli.main(["cleanup-codes"]) == 0
    assert "Removed 1 expired" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 2
    assert "slatehub-admin" in capsys.readouterr().out
