"""Shared fixtures. Required settings are set before the app is imported."""
import os

os.environ.setdefault("GTM_SERVER_URL", "https://gtm.example.net/")
os.environ.setdefault("MEASURELAKE_API_KEY", "test-api-key")
os.environ.setdefault("KEY_API_URL", "https://keys.example.test/givemekey")
os.environ.setdefault("LOG_JSON", "false")

import httpx
import pytest

from tagrelay.config import Settings
from tagrelay.services.crypto import Secret, SecretProvisioner, SecretStore

from helpers import RecordingTransport, make_secret, make_settings, unreachable


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def secret() -> Secret:
    return make_secret()


@pytest.fixture
def provisioner(settings, secret) -> SecretProvisioner:
    """Provisioner already holding a fresh secret; the issuer is unreachable."""
    client = httpx.AsyncClient(transport=RecordingTransport(unreachable))
    return SecretProvisioner(settings, client, SecretStore(secret))
