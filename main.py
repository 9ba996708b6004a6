#!/usr/bin/env python3
"""
SlateHub admin CLI -- offline tooling for the auth core.

Usage:
  python main.py decode-token <TOKEN>
  python main.py decode-token <TOKEN> --check
  python main.py hash-password
  python main.py verify-password <USERNAME>
  python main.py cleanup-codes

decode-token without --check skips signature and expiry validation. It is the
only caller of auth.diagnostics and is never reachable from the HTTP API.

Environment variables (read through core.config.Settings):
  SECRET_KEY     Required for decode-token --check.
  DATABASE_URL   Record store used by verify-password and cleanup-codes.
"""

import argparse
import getpass
import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from auth.diagnostics import UncheckedTokenDecoder
from auth.errors import AuthError, Unauthorized
from auth.passwords import hash_password, verify_password
from auth.store import PersonStore, VerificationCodeStore, make_engine
from auth.tokens import TokenService
from auth.verification import VerificationCodeService
from core.config import get_settings


def _fmt_ts(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _decode_token(token: str, check: bool) -> int:
    if check:
        settings = get_settings()
        tokens = TokenService(settings.secret_key, settings.session_duration_seconds)
        try:
            claims = tokens.validate(token)
        except Unauthorized:
            print("  [!] Token is invalid or expired.")
            return 1
    else:
        try:
            claims = UncheckedTokenDecoder().decode_unchecked(token)
        except Unauthorized as exc:
            print(f"  [!] {exc.message}")
            return 1
        print("  (signature and expiry NOT checked)")

    print(json.dumps(asdict(claims), indent=2))
    print(f"  issued:  {_fmt_ts(claims.issued_at)}")
    print(f"  expires: {_fmt_ts(claims.expires_at)}")
    return 0


def _hash_password(password: Optional[str]) -> int:
    password = password or getpass.getpass("Password: ")
    print(hash_password(password))
    return 0


def _verify_password(username: str, password: Optional[str]) -> int:
    """Check a password against the stored credential -- useful after migrating hashes."""
    engine = make_engine(get_settings().database_url)
    try:
        person = PersonStore(engine).get_by_username(username)
        if person is None:
            print(f"  [!] No person with username '{username}'.")
            return 1
        print(f"  Found {person.id} ({person.email})")
        print(f"  Hash prefix: {person.password_hash[:30]}...")
        password = password or getpass.getpass("Password: ")
        if verify_password(password, person.password_hash):
            print("  Password verification: SUCCESS")
            return 0
        print("  Password verification: FAILED")
        return 1
    finally:
        engine.dispose()


def _cleanup_codes() -> int:
    engine = make_engine(get_settings().database_url)
    try:
        removed = VerificationCodeService(VerificationCodeStore(engine)).cleanup()
    finally:
        engine.dispose()
    print(f"  Removed {removed} expired verification code(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="slatehub-admin",
        description="Offline tooling for SlateHub accounts, sessions and verification codes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py decode-token eyJhbGciOi...
  python main.py decode-token eyJhbGciOi... --check
  python main.py hash-password
  python main.py verify-password chris
  python main.py cleanup-codes
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_decode = sub.add_parser("decode-token", help="Print the claims inside a session token")
    p_decode.add_argument("token", metavar="TOKEN")
    p_decode.add_argument(
        "--check",
        action="store_true",
        help="Validate signature and expiry with SECRET_KEY instead of decoding blindly",
    )

    p_hash = sub.add_parser("hash-password", help="Print an Argon2id credential for a password")
    p_hash.add_argument("--password", default=None, help="Password (prompted for when omitted)")

    p_verify = sub.add_parser("verify-password", help="Check a password against a stored credential")
    p_verify.add_argument("username", metavar="USERNAME")
    p_verify.add_argument("--password", default=None, help="Password (prompted for when omitted)")

    sub.add_parser("cleanup-codes", help="Delete expired verification codes")

    args = parser.parse_args(argv)

    try:
        if args.command == "decode-token":
            return _decode_token(args.token, args.check)
        if args.command == "hash-password":
            return _hash_password(args.password)
        if args.command == "verify-password":
            return _verify_password(args.username, args.password)
        if args.command == "cleanup-codes":
            return _cleanup_codes()
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
