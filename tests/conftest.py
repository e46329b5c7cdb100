import pytest
import sys
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

# ─────────────────────────────────────────────────────────────
# ✅ 1. Add root directory to sys.path
# ─────────────────────────────────────────────────────────────
sys.path.insert(0, os.path.abspath(
    os.path.join(os.path.dirname(__file__), '..')))

from imds_server.config import Settings
from imds_server.models.credentials import ProviderCredentials
from imds_server.services.credential_store import CredentialStore
from imds_server.services.identity_provider import IdentityProviderError
from imds_server.services.refresh_scheduler import RefreshScheduler

T0 = datetime(2020, 7, 5, 9, 0, 0, tzinfo=timezone.utc)
ROLE_ARN = "arn:aws:iam::123456789012:role/test-role"

# ─────────────────────────────────────────────────────────────
# ✅ 2. Controllable clock
# ─────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def elapsed(self) -> float:
        return (self.now - T0).total_seconds()


# ─────────────────────────────────────────────────────────────
# ✅ 3. In-memory identity provider, no AWS calls
# ─────────────────────────────────────────────────────────────


class FakeIdentityProvider:
    """Hands out numbered credentials; flip ``failing`` to simulate an STS outage."""

    def __init__(self, caller_arn: Optional[str] = "arn:aws:iam::123456789012:user/alice"):
        self.failing = False
        self.calls: List[dict] = []
        self._caller_arn = caller_arn
        self._lock = threading.Lock()

    def assume_role(self, role_arn: str, session_name: str, duration_seconds: int) -> ProviderCredentials:
        with self._lock:
            self.calls.append({
                "role_arn": role_arn,
                "session_name": session_name,
                "duration_seconds": duration_seconds,
            })
            n = len(self.calls)
        if self.failing:
            raise IdentityProviderError("AccessDenied")
        return ProviderCredentials(
            access_key_id=f"ASIA{n:04d}",
            secret_access_key=f"secret-{n}",
            session_token=f"token-{n}",
            expires_at=T0 + timedelta(hours=1),
        )

    def caller_arn(self) -> str:
        if self._caller_arn is None:
            raise IdentityProviderError("ExpiredToken")
        return self._caller_arn


# ─────────────────────────────────────────────────────────────
# ✅ 4. Fixtures
# ─────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def store():
    return CredentialStore()


@pytest.fixture
def settings(monkeypatch):
    """Settings built only from explicit values, ignoring the host environment."""
    for key in list(os.environ):
        if key.startswith("IMDS_"):
            monkeypatch.delenv(key)
    return Settings(_env_file=None, role_arn=ROLE_ARN)


@pytest.fixture
def scheduler(store, provider, clock):
    return RefreshScheduler(
        store,
        provider,
        role_arn=ROLE_ARN,
        session_name="alice",
        duration_seconds=1200,
        updatable_seconds=600,
        check_interval=60,
        provider_timeout=5,
        clock=clock,
    )
