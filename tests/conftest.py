"""
tests/conftest.py -- Shared test fixtures for the storefront test suite.

This module provides:
  - store fixtures: in-memory UserStore / ShopStore per test
  - handler fixtures: SessionMutations / EntityMutations / GuardedQueries wired
    to those stores, a FakeMailer and a FakeClock
  - make_user / ctx_for / jar: factories for stored users and synthetic
    CallerContexts whose artifact writes are recorded in an ArtifactJar
  - api_client: TestClient over the real FastAPI app with isolated stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
api_client because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG, ALLOWED_HOSTS and SIGNIN_RATE_LIMIT must be set before any core/api
import so get_settings() picks them up on first call.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("SIGNIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from auth.models import Permission, User
from auth.store import UserStore
from auth.tokens import TokenIssuer, hash_password
from core.context import CallerContext
from core.mailer import Mailer, MailerError
from mutations.entities import EntityMutations
from mutations.queries import GuardedQueries
from mutations.session import SessionMutations
from shop.store import ShopStore

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"
FRONTEND_URL = "http://shop.test"

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeMailer(Mailer):
    """Records every message instead of sending it. Set fail=True to simulate a relay outage."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise MailerError("relay unavailable")
        self.sent.append((to_address, subject, html_body))


class FakeClock:
    """Callable epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class ArtifactJar:
    """Collects artifacts written or cleared through a CallerContext."""

    delivered: dict[str, tuple[str, dict]] = field(default_factory=dict)
    cleared: list[str] = field(default_factory=list)

    def deliver(self, name: str, value: str, options: dict) -> None:
        self.delivered[name] = (value, options)

    def clear(self, name: str) -> None:
        self.cleared.append(name)


def _insert_user(store: UserStore, email: str, *permissions: Permission, password: str = "pw") -> User:
    """Insert a user directly (bypassing signup) and return the stored record."""
    uid = store.create_user(
        User(
            email=email,
            hashed_password=hash_password(password),
            permissions=set(permissions) or {Permission.USER},
        )
    )
    return store.get_by_id(uid)


# ---------------------------------------------------------------------------
# Store and handler fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def shop_store() -> Generator[ShopStore, None, None]:
    store = ShopStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def make_user(user_store):
    """Factory: make_user(email, *permissions, password="pw") -> stored User."""

    def _make(email: str, *permissions: Permission, password: str = "pw") -> User:
        return _insert_user(user_store, email, *permissions, password=password)

    return _make


@pytest.fixture
def jar() -> ArtifactJar:
    return ArtifactJar()


@pytest.fixture
def ctx_for(jar):
    """Factory: ctx_for(user=None) -> CallerContext whose artifact writes land in jar."""

    def _ctx(user: User | None = None) -> CallerContext:
        return CallerContext(user=user, deliver_artifact=jar.deliver, clear_artifact=jar.clear)

    return _ctx


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session(user_store, issuer, mailer, clock) -> SessionMutations:
    return SessionMutations(
        users=user_store,
        issuer=issuer,
        mailer=mailer,
        frontend_url=FRONTEND_URL,
        clock=clock,
    )


@pytest.fixture
def entities(user_store, shop_store) -> EntityMutations:
    return EntityMutations(users=user_store, shop=shop_store)


@pytest.fixture
def queries(user_store) -> GuardedQueries:
    return GuardedQueries(users=user_store)


# ---------------------------------------------------------------------------
# API client -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, shop_store: ShopStore, mailer: FakeMailer):
    """Return a lifespan that wires pre-created test stores into app.state."""
    from api.main import wire_state

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, user_store, shop_store, mailer=mailer)
        await asyncio.sleep(0)
        yield

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    user_store: UserStore
    shop_store: ShopStore
    mailer: FakeMailer

    def make_user(self, email: str, *permissions: Permission, password: str = "pw") -> User:
        return _insert_user(self.user_store, email, *permissions, password=password)

    def bearer_for(self, user: User) -> dict[str, str]:
        """Authorization header carrying a session token for user."""
        token = self.client.app.state.token_issuer.issue_session(user.id)
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness over the real app with isolated shared-memory stores.

    The database name includes the test module name so modules never share
    state.
    """
    from api.main import app

    name = request.module.__name__.replace(".", "_")
    db_url = f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    shop_store = ShopStore(db_url)
    mailer = FakeMailer()

    app.router.lifespan_context = _patch_lifespan(user_store, shop_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, user_store=user_store, shop_store=shop_store, mailer=mailer)

    shop_store.close()
    user_store.close()
