"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
PersonStore is the user directory; VerificationCodeStore holds verification
codes. _row_to_person / _row_to_code are the mappers. Services never touch
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Errors:
  Every SQLAlchemyError is logged and re-raised as auth.errors.DatabaseError.
  A UNIQUE violation on person.username / person.email becomes ConflictError.
  No retries -- the caller sees the failure immediately.

Transactions:
  VerificationCodeStore.transaction() yields a connection inside one
  BEGIN/COMMIT. VerificationCodeService.generate() runs its delete-then-insert
  through it, so a failed insert never loses the previous code. On SQLite,
  which serializes writers, two concurrent generate() calls also cannot leave
  two active codes. Backends running READ COMMITTED give no such guarantee;
  there a racing pair may briefly leave two unused codes, each still bound to
  its subject and purpose and each consumable at most once (mark_used is
  conditional).

  mark_used() and PersonStore.update_password() accept the connection from
  transaction() so a reset code is consumed together with the credential
  change; both tables live in the database make_engine() points at.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Float, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ConflictError, DatabaseError
from auth.models import PERSON_ID_PREFIX, Person, Purpose, VerificationCode

logger = logging.getLogger("slatehub.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_person = Table(
    "person",
    _metadata,
    Column("id", String(64), primary_key=True),  # "person:<hex>"
    Column("username", String(255), nullable=False, unique=True),  # stored lowercase
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),  # encoded Argon2id credential
    Column("name", String(255)),
    Column("verification_status", String(30), nullable=False, server_default="unverified"),
    Column("created_at", String(32), nullable=False),
)

_verification_codes = Table(
    "verification_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subject_id", String(64), nullable=False),
    Column("code", String(6), nullable=False),
    Column("purpose", String(32), nullable=False),  # Purpose.value
    Column("expires_at", Float, nullable=False),  # epoch seconds
    Column("used", Integer, nullable=False, server_default="0"),
    Column("created_at", Float, nullable=False),
    Index("ix_verification_codes_subject_purpose", "subject_id", "purpose"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create the engine shared by both stores and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    with _db_errors("create schema"):
        _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_person_id() -> str:
    return f"{PERSON_ID_PREFIX}{secrets.token_hex(10)}"


def normalize_person_id(person_id: str) -> str:
    """Accept both "person:abc" and bare "abc"; return the stored form."""
    if person_id.startswith(PERSON_ID_PREFIX):
        return person_id
    return f"{PERSON_ID_PREFIX}{person_id}"


@contextmanager
def _db_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Database error during %s: %s", action, exc)
        raise DatabaseError() from exc


# ---------------------------------------------------------------------------
# User directory
# ---------------------------------------------------------------------------


class PersonStore:
    """Repository for Person records.

    Usage:
        engine = make_engine("sqlite:///slatehub_auth.db")
        people = PersonStore(engine)
        person_id = people.create_person(Person(username="chris", email="chris@example.com",
                                                password_hash=hash_password("secret")))
        person = people.get_by_id(person_id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_person(self, person: Person) -> str:
        """Insert a new person and return its id.

        Raises ConflictError if the username or email already exists.
        """
        person_id = person.id or _new_person_id()
        with _db_errors("create person"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _person.insert().values(
                            id=person_id,
                            username=person.username.lower(),
                            email=person.email,
                            password_hash=person.password_hash,
                            name=person.name,
                            verification_status=person.verification_status,
                            created_at=_now_iso(),
                        )
                    )
            except IntegrityError as exc:
                raise ConflictError("Username or email already exists.") from exc
        return person_id

    def get_by_id(self, person_id: str) -> Person | None:
        with _db_errors("get person by id"):
            with self.engine.connect() as conn:
                row = conn.execute(_person.select().where(_person.c.id == normalize_person_id(person_id))).fetchone()
        return _row_to_person(row) if row is not None else None

    def get_by_username(self, username: str) -> Person | None:
        """Usernames are stored lowercase; the lookup lowercases its input."""
        with _db_errors("get person by username"):
            with self.engine.connect() as conn:
                row = conn.execute(_person.select().where(_person.c.username == username.lower())).fetchone()
        return _row_to_person(row) if row is not None else None

    def get_by_email(self, email: str) -> Person | None:
        with _db_errors("get person by email"):
            with self.engine.connect() as conn:
                row = conn.execute(_person.select().where(_person.c.email == email)).fetchone()
        return _row_to_person(row) if row is not None else None

    def get_by_identifier(self, identifier: str) -> Person | None:
        """Login accepts either a username or an email address."""
        if "@" in identifier:
            person = self.get_by_email(identifier)
            if person is not None:
                return person
        return self.get_by_username(identifier)

    def update_password(self, person_id: str, password_hash: str, conn: Connection | None = None) -> bool:
        """Replace the stored credential. Returns False if the person does not exist.

        Pass conn to run the update inside a transaction the caller already
        holds (see VerificationCodeService.verify).
        """
        stmt = (
            _person.update()
            .where(_person.c.id == normalize_person_id(person_id))
            .values(password_hash=password_hash)
        )
        with _db_errors("update password"):
            if conn is not None:
                return conn.execute(stmt).rowcount > 0
            with self.engine.begin() as own:
                return own.execute(stmt).rowcount > 0

    def mark_email_verified(self, person_id: str) -> bool:
        with _db_errors("mark email verified"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    _person.update()
                    .where(_person.c.id == normalize_person_id(person_id))
                    .values(verification_status="email")
                )
        return result.rowcount > 0

    def is_email_verified(self, person_id: str) -> bool:
        person = self.get_by_id(person_id)
        return person is not None and person.is_email_verified


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------


class VerificationCodeStore:
    """Repository for VerificationCode rows.

    Write methods that must be atomic with each other take an explicit
    Connection obtained from transaction(); the rest open their own.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside one transaction; commit on exit, roll back on error."""
        with _db_errors("verification code transaction"):
            with self.engine.begin() as conn:
                yield conn

    def delete_unused(self, conn: Connection, subject_id: str, purpose: Purpose) -> int:
        result = conn.execute(
            _verification_codes.delete().where(
                (_verification_codes.c.subject_id == subject_id)
                & (_verification_codes.c.purpose == purpose.value)
                & (_verification_codes.c.used == 0)
            )
        )
        return result.rowcount

    def insert_code(self, conn: Connection, record: VerificationCode) -> int:
        result = conn.execute(
            _verification_codes.insert().values(
                subject_id=record.subject_id,
                code=record.code,
                purpose=record.purpose.value,
                expires_at=record.expires_at,
                used=1 if record.used else 0,
                created_at=record.created_at,
            )
        )
        return result.inserted_primary_key[0]

    def find_code(self, subject_id: str, code: str, purpose: Purpose) -> VerificationCode | None:
        """Return the row matching (subject, code, purpose), used or not, expired or not."""
        with _db_errors("find verification code"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    _verification_codes.select()
                    .where(
                        (_verification_codes.c.subject_id == subject_id)
                        & (_verification_codes.c.code == code)
                        & (_verification_codes.c.purpose == purpose.value)
                    )
                    .order_by(_verification_codes.c.created_at.desc())
                    .limit(1)
                ).fetchone()
        return _row_to_code(row) if row is not None else None

    def find_active_code(self, subject_id: str, purpose: Purpose, now: float) -> VerificationCode | None:
        """Return the newest unused, unexpired code for (subject, purpose)."""
        with _db_errors("find active verification code"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    _verification_codes.select()
                    .where(
                        (_verification_codes.c.subject_id == subject_id)
                        & (_verification_codes.c.purpose == purpose.value)
                        & (_verification_codes.c.used == 0)
                        & (_verification_codes.c.expires_at >= now)
                    )
                    .order_by(_verification_codes.c.created_at.desc())
                    .limit(1)
                ).fetchone()
        return _row_to_code(row) if row is not None else None

    def mark_used(self, code_id: int, conn: Connection | None = None) -> bool:
        """Flip used to true. Returns False if the row was already used (or is gone)."""
        stmt = (
            _verification_codes.update()
            .where((_verification_codes.c.id == code_id) & (_verification_codes.c.used == 0))
            .values(used=1)
        )
        with _db_errors("mark verification code used"):
            if conn is not None:
                return conn.execute(stmt).rowcount > 0
            with self.engine.begin() as own:
                return own.execute(stmt).rowcount > 0

    def delete_expired(self, now: float) -> int:
        with _db_errors("delete expired verification codes"):
            with self.engine.begin() as conn:
                result = conn.execute(_verification_codes.delete().where(_verification_codes.c.expires_at < now))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_person(row) -> Person:
    return Person(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        verification_status=row.verification_status,
        created_at=row.created_at,
    )


def _row_to_code(row) -> VerificationCode:
    return VerificationCode(
        id=row.id,
        subject_id=row.subject_id,
        code=row.code,
        purpose=Purpose(row.purpose),
        expires_at=row.expires_at,
        used=bool(row.used),
        created_at=row.created_at,
    )
