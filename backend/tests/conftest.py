"""Shared fixtures for backend tests.

Every test gets its own SQLite file database, a session issuer and login
limiter driven by fake clocks, and an admin token verifier keyed by a test
secret.  The ``client`` fixture wires all of them into the FastAPI app via
``dependency_overrides``.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from httpx import ASGITransport

from fishstock.auth.deps import get_admin_verifier, get_login_limiter, get_session_issuer
from fishstock.auth.external import ExternalTokenVerifier, SecretKeyResolver
from fishstock.auth.identity import AdminIdentity, WorkerIdentity
from fishstock.auth.rate_limit import SlidingWindowRateLimiter
from fishstock.auth.sessions import SessionIssuer
from fishstock.db.engine import build_engine, build_sessionmaker, get_db
from fishstock.db.models import Base
from fishstock.main import app
from fishstock.services import product_service, worker_service

WORKER_SECRET = "worker-test-secret-0123456789abcdef0123456789"
ADMIN_SECRET = "admin-provider-test-secret-0123456789abcdef"
TEST_BCRYPT_ROUNDS = 4
BUSINESS = "biz-1"
OTHER_BUSINESS = "biz-2"


class FakeClock:
    """Wall clock for the session issuer; only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def make_admin_token(
    sub: str = "admin-1",
    email: str = "boss@fishstock.io",
    role: str | None = "admin",
    secret: str = ADMIN_SECRET,
    expires_in: int = 3600,
    audience: str = "authenticated",
    business: str | None = BUSINESS,
) -> str:
    now = int(time.time())
    payload: dict = {"sub": sub, "email": email, "aud": audience, "iat": now, "exp": now + expires_in}
    app_metadata: dict = {}
    if role is not None:
        app_metadata["role"] = role
    if business is not None:
        app_metadata["business_id"] = business
    if app_metadata:
        payload["app_metadata"] = app_metadata
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ── Database ────────────────────────────────────────────────────


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fishstock-test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ── Auth components ─────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def issuer(clock) -> SessionIssuer:
    return SessionIssuer(WORKER_SECRET, ttl=timedelta(minutes=60), clock=clock)


@pytest.fixture
def limiter(monotonic) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(5, 300.0, clock=monotonic)


@pytest.fixture
def admin_verifier() -> ExternalTokenVerifier:
    return ExternalTokenVerifier(
        SecretKeyResolver(ADMIN_SECRET),
        algorithms=["HS256"],
        audience="authenticated",
        role_claim="app_metadata.role",
        required_role="admin",
    )


@pytest.fixture
def admin() -> AdminIdentity:
    return AdminIdentity(subject="admin-1", email="boss@fishstock.io", business_id=BUSINESS)


@pytest.fixture
def other_admin() -> AdminIdentity:
    return AdminIdentity(subject="admin-2", email="deputy@fishstock.io", business_id=BUSINESS)


# ── Seed data ───────────────────────────────────────────────────


@pytest.fixture
def make_worker(session_factory):
    async def _make(email: str = "a@x.com", password: str = "password123", **fields):
        async with session_factory() as session:
            worker = await worker_service.create_worker(
                session,
                full_name=fields.pop("full_name", "Test Worker"),
                email=email,
                password=password,
                business_id=fields.pop("business_id", BUSINESS),
                bcrypt_rounds=TEST_BCRYPT_ROUNDS,
                **fields,
            )
            await session.commit()
            return worker

    return _make


@pytest.fixture
def make_product(session_factory):
    async def _make(
        name: str = "Tilapia",
        quantity_box: int = 10,
        quantity_kg: float = 50.0,
        business_id: str = BUSINESS,
        **fields,
    ):
        async with session_factory() as session:
            product = await product_service.create_product(
                session, business_id, name=name, quantity_box=quantity_box, quantity_kg=quantity_kg, **fields
            )
            await session.commit()
            return product

    return _make


def worker_identity(worker) -> WorkerIdentity:
    return WorkerIdentity(worker_id=worker.worker_id, email=worker.email, business_id=worker.business_id)


# ── HTTP client ─────────────────────────────────────────────────


@pytest.fixture
async def client(session_factory, issuer, limiter, admin_verifier):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_issuer] = lambda: issuer
    app.dependency_overrides[get_login_limiter] = lambda: limiter
    app.dependency_overrides[get_admin_verifier] = lambda: admin_verifier

    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
