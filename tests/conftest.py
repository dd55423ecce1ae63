"""Shared pytest fixtures for the email MCP test suite."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import anyio
import pytest
from cryptography.fernet import Fernet
from google.oauth2.credentials import Credentials

from email_mcp.domain.models import ClientDescriptor
from email_mcp.security.protector import FernetProtector
from email_mcp.security.store import SecretStore

TEST_CLIENT_ID = "1234-abc.apps.googleusercontent.com"
TEST_CLIENT_SECRET = "GOCSPX-test-secret"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def protector() -> FernetProtector:
    """A protector with an in-memory key; no key file is written."""
    return FernetProtector(key=Fernet.generate_key())


@pytest.fixture
def secret_store(tmp_path: Path, protector: FernetProtector) -> SecretStore:
    """A secret store rooted in a fresh temporary directory."""
    return SecretStore(tmp_path / "tokens", protector)


@pytest.fixture
def credentials_path(tmp_path: Path) -> Path:
    """Location of the fallback credentials.json (absent unless a test writes it)."""
    return tmp_path / "credentials.json"


def make_live_credentials(
    token: str = "access-token", refresh_token: str = "refresh-token"
) -> Credentials:
    """Real google-auth credentials that are valid for the next hour."""
    expiry = datetime.now(UTC).replace(tzinfo=None) + timedelta(hours=1)
    return Credentials(
        token=token,
        refresh_token=refresh_token,
        token_uri="https://oauth2.googleapis.com/token",
        client_id=TEST_CLIENT_ID,
        client_secret=TEST_CLIENT_SECRET,
        scopes=["https://www.googleapis.com/auth/gmail.readonly"],
        expiry=expiry,
    )


def make_mock_credentials(
    token: str | None = "access-token",
    expired: bool = False,
    refresh_token: str | None = "refresh-token",
) -> MagicMock:
    """A credential double whose ``refresh`` is observable."""
    creds = MagicMock(spec=Credentials)
    creds.token = token
    creds.expired = expired
    creds.refresh_token = refresh_token
    creds.to_json.return_value = json.dumps({"token": token, "refresh_token": refresh_token})
    return creds


class FakeConsentFlow:
    """Consent flow double that records calls and returns a fixed credential."""

    def __init__(self, result: Any = None, error: Exception | None = None, delay: float = 0.0):
        self.result = result if result is not None else make_live_credentials()
        self.error = error
        self.delay = delay
        self.calls: list[tuple[ClientDescriptor, list[str]]] = []

    async def obtain(self, descriptor: ClientDescriptor, scopes: list[str]) -> Any:
        self.calls.append((descriptor, scopes))
        if self.delay:
            await anyio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def consent_flow() -> FakeConsentFlow:
    return FakeConsentFlow()


def write_credentials_file(path: Path, client_id: str = TEST_CLIENT_ID) -> Path:
    """Write a Google-style ``credentials.json`` for a desktop client."""
    path.write_text(
        json.dumps(
            {
                "installed": {
                    "client_id": client_id,
                    "client_secret": TEST_CLIENT_SECRET,
                    "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                    "token_uri": "https://oauth2.googleapis.com/token",
                    "redirect_uris": ["http://localhost"],
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def live_credentials() -> Credentials:
    return make_live_credentials()


@pytest.fixture
def mock_credentials() -> Any:
    """Factory for credential doubles: ``mock_credentials(expired=True)``."""
    return make_mock_credentials


@pytest.fixture
def fake_consent_flow() -> Any:
    """Factory for consent flow doubles with a custom result, error, or delay."""
    return FakeConsentFlow


@pytest.fixture
def credentials_file(credentials_path: Path) -> Any:
    """Factory that writes the fallback credentials.json and returns its path."""

    def _write(client_id: str = TEST_CLIENT_ID) -> Path:
        return write_credentials_file(credentials_path, client_id)

    return _write
