"""Tests for the Gmail OAuth2 CredentialLifecycle.

Covers: configuration discovery, descriptor precedence, session restore and
persistence, refresh, reauth/revoke cleanup, invalidation listeners, and
single-flight acquisition under concurrency.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import anyio
import httpx
import pytest

from email_mcp.auth.lifecycle import (
    CLIENT_DESCRIPTOR_KEY,
    GOOGLE_REVOKE_URI,
    SESSION_TOKEN_KEY,
    CredentialLifecycle,
)
from email_mcp.domain.errors import (
    AuthenticationRequiredError,
    ConfigurationMissingError,
    InvalidArgumentError,
)
from email_mcp.domain.types import AuthState
from email_mcp.security.store import SecretStore

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def _lifecycle(
    store: SecretStore,
    consent_flow: Any,
    credentials_path: Path,
    http_client: httpx.AsyncClient | None = None,
) -> CredentialLifecycle:
    return CredentialLifecycle(
        store=store,
        consent_flow=consent_flow,
        credentials_path=credentials_path,
        scopes=SCOPES,
        http_client=http_client,
    )


def _revoke_client(status_code: int, seen: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Configuration and status
# ---------------------------------------------------------------------------


class TestStatus:
    """is_configured / is_authenticated / state reflect what is on disk."""

    @pytest.mark.anyio()
    async def test_nothing_configured(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.is_configured() is False
        assert await lifecycle.is_authenticated() is False
        assert await lifecycle.state() == AuthState.NO_CLIENT_DESCRIPTOR

    @pytest.mark.anyio()
    async def test_configured_by_saved_descriptor(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("id.apps.googleusercontent.com", "secret")

        assert await lifecycle.is_configured() is True
        assert await lifecycle.state() == AuthState.CLIENT_DESCRIPTOR_PRESENT

    @pytest.mark.anyio()
    async def test_configured_by_fallback_file(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.is_configured() is True

    @pytest.mark.anyio()
    async def test_persisted_session_counts_as_authenticated(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        await secret_store.save(SESSION_TOKEN_KEY, "{}")
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.is_authenticated() is True
        assert await lifecycle.state() == AuthState.AUTHENTICATED


# ---------------------------------------------------------------------------
# Client descriptor
# ---------------------------------------------------------------------------


class TestClientDescriptor:
    """Saving and loading the long-lived application identity."""

    @pytest.mark.anyio()
    async def test_save_strips_and_encrypts(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        descriptor = await lifecycle.save_client_descriptor("  my-id  ", "\tmy-secret\n")

        assert descriptor.installed.client_id == "my-id"
        assert descriptor.installed.client_secret == "my-secret"
        raw = secret_store.path_for(CLIENT_DESCRIPTOR_KEY).read_bytes()
        assert b"my-secret" not in raw

    @pytest.mark.anyio()
    async def test_saved_descriptor_has_installed_shape(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")

        stored = json.loads(await secret_store.load(CLIENT_DESCRIPTOR_KEY) or "{}")

        assert stored["installed"]["client_id"] == "my-id"
        assert stored["installed"]["token_uri"] == "https://oauth2.googleapis.com/token"
        assert stored["installed"]["redirect_uris"] == ["http://localhost"]

    @pytest.mark.anyio()
    @pytest.mark.parametrize(("client_id", "client_secret"), [("", "s"), ("i", "  ")])
    async def test_save_rejects_blank_values(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        client_id: str,
        client_secret: str,
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        with pytest.raises(InvalidArgumentError):
            await lifecycle.save_client_descriptor(client_id, client_secret)
        assert await secret_store.exists(CLIENT_DESCRIPTOR_KEY) is False

    @pytest.mark.anyio()
    async def test_store_wins_over_file(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file(client_id="from-file")
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("from-store", "secret")

        descriptor = await lifecycle.load_client_descriptor()

        assert descriptor.installed.client_id == "from-store"

    @pytest.mark.anyio()
    async def test_falls_back_to_file(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file(client_id="from-file")
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        descriptor = await lifecycle.load_client_descriptor()

        assert descriptor.installed.client_id == "from-file"

    @pytest.mark.anyio()
    async def test_missing_everywhere_names_expected_path(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        with pytest.raises(ConfigurationMissingError) as exc_info:
            await lifecycle.load_client_descriptor()

        assert exc_info.value.expected_path == credentials_path
        assert str(credentials_path) in str(exc_info.value)


# ---------------------------------------------------------------------------
# authenticate()
# ---------------------------------------------------------------------------


class TestAuthenticate:
    """Consent, persistence, restore, and failure reporting."""

    @pytest.mark.anyio()
    async def test_not_configured_returns_false(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.authenticate() is False
        assert consent_flow.calls == []

    @pytest.mark.anyio()
    async def test_consent_persists_session(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")

        assert await lifecycle.authenticate() is True

        assert len(consent_flow.calls) == 1
        descriptor, scopes = consent_flow.calls[0]
        assert descriptor.installed.client_id == "my-id"
        assert scopes == SCOPES
        stored = json.loads(await secret_store.load(SESSION_TOKEN_KEY) or "{}")
        assert stored["refresh_token"] == "refresh-token"
        assert await lifecycle.get_credential() is consent_flow.result

    @pytest.mark.anyio()
    async def test_consent_failure_returns_false(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        flow = fake_consent_flow(error=RuntimeError("user closed the browser"))
        lifecycle = _lifecycle(secret_store, flow, credentials_path)

        assert await lifecycle.authenticate() is False
        assert await secret_store.exists(SESSION_TOKEN_KEY) is False

    @pytest.mark.anyio()
    async def test_malformed_descriptor_returns_false(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        credentials_path.write_text('{"web": {}}', encoding="utf-8")
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.authenticate() is False
        assert consent_flow.calls == []

    @pytest.mark.anyio()
    async def test_restores_persisted_session_without_consent(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
        live_credentials: Any,
    ) -> None:
        credentials_file()
        await secret_store.save(SESSION_TOKEN_KEY, live_credentials.to_json())
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.authenticate() is True

        assert consent_flow.calls == []
        creds = await lifecycle.get_credential()
        assert creds.token == live_credentials.token
        assert creds.refresh_token == live_credentials.refresh_token

    @pytest.mark.anyio()
    async def test_unreadable_session_falls_back_to_consent(
        self,
        secret_store: SecretStore,
        consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        await secret_store.save(SESSION_TOKEN_KEY, "not json")
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        assert await lifecycle.authenticate() is True
        assert len(consent_flow.calls) == 1

    @pytest.mark.anyio()
    async def test_stale_consent_result_is_refreshed(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        mock_credentials: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        creds = mock_credentials(token=None)
        lifecycle = _lifecycle(secret_store, fake_consent_flow(result=creds), credentials_path)

        assert await lifecycle.authenticate() is True

        creds.refresh.assert_called_once()
        assert await secret_store.exists(SESSION_TOKEN_KEY) is True


# ---------------------------------------------------------------------------
# get_credential()
# ---------------------------------------------------------------------------


class TestGetCredential:
    """Live credentials on demand."""

    @pytest.mark.anyio()
    async def test_unconfigured_raises_authentication_required(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)

        with pytest.raises(AuthenticationRequiredError, match="auth_status"):
            await lifecycle.get_credential()

    @pytest.mark.anyio()
    async def test_consent_failure_raises_and_caches_nothing(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        flow = fake_consent_flow(error=RuntimeError("user closed the browser"))
        lifecycle = _lifecycle(secret_store, flow, credentials_path)

        with pytest.raises(AuthenticationRequiredError):
            await lifecycle.get_credential()

        assert await lifecycle.is_authenticated() is False
        with pytest.raises(AuthenticationRequiredError):
            await lifecycle.get_credential()
        assert len(flow.calls) == 2

    @pytest.mark.anyio()
    async def test_authenticates_lazily(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")

        assert await lifecycle.get_credential() is consent_flow.result
        assert len(consent_flow.calls) == 1

    @pytest.mark.anyio()
    async def test_cached_credential_reused(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")

        first = await lifecycle.get_credential()
        second = await lifecycle.get_credential()

        assert first is second
        assert len(consent_flow.calls) == 1

    @pytest.mark.anyio()
    async def test_expired_credential_refreshed_and_persisted(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        mock_credentials: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        creds = mock_credentials()
        lifecycle = _lifecycle(secret_store, fake_consent_flow(result=creds), credentials_path)
        assert await lifecycle.authenticate() is True
        await secret_store.delete(SESSION_TOKEN_KEY)

        creds.expired = True
        result = await lifecycle.get_credential()

        assert result is creds
        creds.refresh.assert_called_once()
        assert await secret_store.exists(SESSION_TOKEN_KEY) is True

    @pytest.mark.anyio()
    async def test_refresh_failure_raises_and_clears_cache(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        mock_credentials: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        creds = mock_credentials()
        lifecycle = _lifecycle(secret_store, fake_consent_flow(result=creds), credentials_path)
        assert await lifecycle.authenticate() is True
        await secret_store.delete(SESSION_TOKEN_KEY)

        creds.expired = True
        creds.refresh.side_effect = RuntimeError("invalid_grant")

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            await lifecycle.get_credential()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await lifecycle.is_authenticated() is False

    @pytest.mark.anyio()
    async def test_concurrent_callers_share_one_consent(
        self,
        secret_store: SecretStore,
        fake_consent_flow: Any,
        credentials_path: Path,
        credentials_file: Any,
    ) -> None:
        credentials_file()
        flow = fake_consent_flow(delay=0.05)
        lifecycle = _lifecycle(secret_store, flow, credentials_path)
        results: list[Any] = []

        async def _caller() -> None:
            results.append(await lifecycle.get_credential())

        async with anyio.create_task_group() as tg:
            for _ in range(5):
                tg.start_soon(_caller)

        assert len(flow.calls) == 1
        assert len(results) == 5
        assert all(r is flow.result for r in results)


# ---------------------------------------------------------------------------
# reauth() and revoke()
# ---------------------------------------------------------------------------


class TestReauthAndRevoke:
    """Session teardown keeps the client descriptor and notifies listeners."""

    @pytest.mark.anyio()
    async def test_reauth_replaces_session_keeps_descriptor(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")
        await secret_store.save(SESSION_TOKEN_KEY, "not json")
        listener = MagicMock()
        lifecycle.add_invalidation_listener(listener)

        assert await lifecycle.reauth() is True

        listener.assert_called_once_with()
        assert len(consent_flow.calls) == 1
        assert await secret_store.exists(CLIENT_DESCRIPTOR_KEY) is True
        stored = json.loads(await secret_store.load(SESSION_TOKEN_KEY) or "{}")
        assert stored["token"] == "access-token"

    @pytest.mark.anyio()
    async def test_revoke_posts_refresh_token(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        seen: list[httpx.Request] = []
        async with _revoke_client(200, seen) as client:
            lifecycle = _lifecycle(secret_store, consent_flow, credentials_path, client)
            await lifecycle.save_client_descriptor("my-id", "my-secret")
            assert await lifecycle.authenticate() is True

            await lifecycle.revoke()

        assert len(seen) == 1
        assert str(seen[0].url) == GOOGLE_REVOKE_URI
        assert seen[0].content == b"token=refresh-token"
        assert await secret_store.exists(SESSION_TOKEN_KEY) is False
        assert await secret_store.exists(CLIENT_DESCRIPTOR_KEY) is True

    @pytest.mark.anyio()
    async def test_revoke_cleans_up_when_remote_fails(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        seen: list[httpx.Request] = []
        async with _revoke_client(500, seen) as client:
            lifecycle = _lifecycle(secret_store, consent_flow, credentials_path, client)
            await lifecycle.save_client_descriptor("my-id", "my-secret")
            assert await lifecycle.authenticate() is True
            listener = MagicMock()
            lifecycle.add_invalidation_listener(listener)

            await lifecycle.revoke()

        assert len(seen) == 1
        listener.assert_called_once_with()
        assert await lifecycle.is_authenticated() is False
        assert await secret_store.exists(SESSION_TOKEN_KEY) is False
        assert await secret_store.exists(CLIENT_DESCRIPTOR_KEY) is True

    @pytest.mark.anyio()
    async def test_revoke_without_credential_skips_remote(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        seen: list[httpx.Request] = []
        await secret_store.save(SESSION_TOKEN_KEY, "{}")
        async with _revoke_client(200, seen) as client:
            lifecycle = _lifecycle(secret_store, consent_flow, credentials_path, client)
            await lifecycle.revoke()

        assert seen == []
        assert await secret_store.exists(SESSION_TOKEN_KEY) is False

    @pytest.mark.anyio()
    async def test_revoke_without_http_client_uses_short_lived_client(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        lifecycle = _lifecycle(secret_store, consent_flow, credentials_path)
        await lifecycle.save_client_descriptor("my-id", "my-secret")
        assert await lifecycle.authenticate() is True

        with patch("email_mcp.auth.lifecycle.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aenter__.side_effect = httpx.ConnectError("offline")
            await lifecycle.revoke()

        mock_client_cls.assert_called_once_with(timeout=10.0)
        assert await secret_store.exists(SESSION_TOKEN_KEY) is False

    @pytest.mark.anyio()
    async def test_authenticate_after_revoke_runs_consent_again(
        self, secret_store: SecretStore, consent_flow: Any, credentials_path: Path
    ) -> None:
        seen: list[httpx.Request] = []
        async with _revoke_client(200, seen) as client:
            lifecycle = _lifecycle(secret_store, consent_flow, credentials_path, client)
            await lifecycle.save_client_descriptor("my-id", "my-secret")
            assert await lifecycle.authenticate() is True
            await lifecycle.revoke()

            assert await lifecycle.authenticate() is True

        assert len(consent_flow.calls) == 2
