import pytest

from oauthflow.models.config import ClientCredentials, ProviderConfig


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials(client_id="client-456", client_secret="secret-789")


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        authorization_endpoint="https://auth.example.com/authorize",
        token_endpoint="https://auth.example.com/token",
        redirect_uri="https://myapp.com/oauth/callback",
    )
