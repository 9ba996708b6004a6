"""
tests/conftest.py -- Shared test fixtures for SlateHub tests.

This module provides:
  - FakeClock / RecordingMailer: deterministic collaborators for the services
  - engine: an isolated named shared-memory SQLite engine per test
  - person_store / code_store / codes: repositories and service over that engine
  - client: TestClient wired to the real FastAPI app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool and the session
authenticator offloads its lookup to one. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_services
from auth.models import Purpose
from auth.store import PersonStore, VerificationCodeStore, make_engine
from auth.verification import VerificationCodeService
from core.config import get_settings

# ---------------------------------------------------------------------------
# Deterministic collaborators
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock for services that accept `clock=`. Starts at a fixed epoch."""

    def __init__(self, now: float = 1_750_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer:
    """Mailer that keeps every message so tests can read the delivered codes."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, Purpose]] = []

    def send_verification_code(self, email: str, code: str, purpose: Purpose) -> None:
        self.sent.append((email, code, purpose))

    def last_code(self, email: str, purpose: Purpose) -> str:
        for sent_to, code, sent_purpose in reversed(self.sent):
            if sent_to == email and sent_purpose == purpose:
                return code
        raise AssertionError(f"no {purpose} code sent to {email}")


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


def _shared_memory_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def engine():
    eng = make_engine(_shared_memory_url())
    yield eng
    eng.dispose()


@pytest.fixture
def person_store(engine) -> PersonStore:
    return PersonStore(engine)


@pytest.fixture
def code_store(engine) -> VerificationCodeStore:
    return VerificationCodeStore(engine)


@pytest.fixture
def codes(code_store, clock) -> VerificationCodeService:
    return VerificationCodeService(code_store, clock=clock)


# ---------------------------------------------------------------------------
# App fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the isolated test engine into app.state through the same
    build_services() the real lifespan uses, then swaps in the recording
    mailer. The cleanup_task is a long-sleeping coroutine so shutdown can
    cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, get_settings(), engine)
        app.state.mailer = mailer
        app.state.accounts.mailer = mailer
        app.state.cleanup_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.cleanup_task.cancel()

    return test_lifespan


@pytest.fixture
def client(engine, mailer) -> Generator[tuple[TestClient, RecordingMailer], None, None]:
    """Yield (client, mailer) for HTTP integration tests.

    The rate limiter's in-memory counters are reset so each test starts with
    a full login budget.
    """
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(engine, mailer)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client, mailer
