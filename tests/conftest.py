"""Shared fixtures: isolated SQLite files, controllable clocks and a recording notifier."""

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from app.application.services.identity_service import IdentityPolicy, IdentityService, RegistrationData
from app.core.security import SessionTokenService
from app.infrastructure.persistence.sqlite import SQLitePersistence
from app.services.rate_limiter import LoginRateLimiter

# Minimum cost bcrypt accepts; keeps the suite fast.
TEST_BCRYPT_ROUNDS = 4
TEST_SECRET = "test-secret-key-with-at-least-32-bytes"


class FakeMonotonicClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, delta: timedelta) -> None:
        self.value += delta.total_seconds()


class FakeWallClock:
    def __init__(self, start: datetime) -> None:
        self.value = start

    def __call__(self) -> datetime:
        return self.value

    def advance(self, delta: timedelta) -> None:
        self.value += delta


class RecordingNotifier:
    """Captures reset links instead of mailing them."""

    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.sent: List[Tuple[str, str, datetime]] = []

    def send_password_reset(self, to_email: str, reset_token: str, expires_at: datetime) -> bool:
        self.sent.append((to_email, reset_token, expires_at))
        return self.deliver

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def monotonic_clock() -> FakeMonotonicClock:
    return FakeMonotonicClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock(datetime.now(tz=timezone.utc))


@pytest.fixture
def persistence(tmp_path, wall_clock):
    store = SQLitePersistence(tmp_path / "identity.db", now=wall_clock)
    yield store
    store.close()


@pytest.fixture
def rate_limiter(monotonic_clock) -> LoginRateLimiter:
    return LoginRateLimiter(max_attempts=5, lockout=timedelta(minutes=15), clock=monotonic_clock)


@pytest.fixture
def token_service() -> SessionTokenService:
    return SessionTokenService(secret_key=TEST_SECRET, token_exp_minutes=30)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def identity(persistence, rate_limiter, token_service, notifier, wall_clock) -> IdentityService:
    return IdentityService(
        persistence=persistence,
        rate_limiter=rate_limiter,
        token_service=token_service,
        notifier=notifier,
        policy=IdentityPolicy(bcrypt_rounds=TEST_BCRYPT_ROUNDS),
        now=wall_clock,
    )


@pytest.fixture
def citizen(identity):
    return identity.register(
        RegistrationData(
            email="joao@email.com",
            password="MinhaSenh@123",
            full_name="João Silva",
            role="citizen",
        )
    )


@pytest.fixture
def pending_admin(identity):
    return identity.register(
        RegistrationData(
            email="admin@prefeitura.sp.gov.br",
            password="AdminSenh@123",
            full_name="Admin User",
            role="admin",
            phone="(11) 99999-9999",
        )
    )


@pytest.fixture
def master(identity):
    return identity.provision_master("master@sentinela.gov.br", "M@sterKey2024", "Master Admin")
