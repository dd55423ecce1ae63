"""Gmail OAuth2 credential lifecycle for the single configured account.

States::

    NO_CLIENT_DESCRIPTOR -> CLIENT_DESCRIPTOR_PRESENT -> AUTHENTICATED
                                      ^                      |
                                      +------ revoke() ------+

Two secrets live in the ``SecretStore`` with independent lifetimes:

- the **client descriptor** (``credentials.json`` shape), which survives
  ``reauth()`` and ``revoke()``;
- the **session token** (access + refresh token), which does not.

A single ``anyio.Lock`` guards every acquisition and refresh, so concurrent
callers that find no credential wait for the one consent or refresh
round-trip in flight rather than starting their own.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import anyio
import google.auth.transport.requests
import httpx
import structlog
from google.oauth2.credentials import Credentials

from email_mcp.auth.consent import ConsentFlow
from email_mcp.domain.errors import (
    AuthenticationRequiredError,
    ConfigurationMissingError,
    InvalidArgumentError,
)
from email_mcp.domain.models import ClientDescriptor, InstalledClient
from email_mcp.domain.types import AuthState
from email_mcp.security.store import SecretStore

logger = structlog.get_logger()

CLIENT_DESCRIPTOR_KEY: str = "gmail-client-credentials"
SESSION_TOKEN_KEY: str = "gmail-oauth-token"

GOOGLE_REVOKE_URI: str = "https://oauth2.googleapis.com/revoke"

InvalidationListener = Callable[[], None]


def _is_stale(creds: Credentials) -> bool:
    """True when the access token is missing or past its expiry (with clock skew)."""
    return not creds.token or bool(creds.expired)


class CredentialLifecycle:
    """Acquire, cache, refresh, and discard the account's OAuth2 credential.

    Args:
        store: Encrypted store holding the client descriptor and session token.
        consent_flow: Interactive capability used when no stored session exists.
        credentials_path: Fallback ``credentials.json`` location.
        scopes: OAuth2 scopes requested from the consent flow.
        http_client: Client used for remote revocation.  A short-lived one is
            created per call when omitted.
    """

    def __init__(
        self,
        store: SecretStore,
        consent_flow: ConsentFlow,
        credentials_path: Path,
        scopes: list[str],
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._consent_flow = consent_flow
        self._credentials_path = credentials_path
        self._scopes = list(scopes)
        self._http_client = http_client
        self._credential: Credentials | None = None
        self._lock = anyio.Lock()
        self._listeners: list[InvalidationListener] = []

    @property
    def credentials_path(self) -> Path:
        return self._credentials_path

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback run whenever ``reauth()`` or ``revoke()`` drops the session.

        Anything caching an object built from the credential (an API client
        handle, for example) must register here and discard it.
        """
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------

    async def is_authenticated(self) -> bool:
        """Whether a credential is cached or a session token is persisted.

        Existence only: a persisted token may still turn out to be unusable.
        """
        if self._credential is not None:
            return True
        return await self._store.exists(SESSION_TOKEN_KEY)

    async def is_configured(self) -> bool:
        """Whether a client descriptor is stored or the fallback file exists."""
        if await self._store.exists(CLIENT_DESCRIPTOR_KEY):
            return True
        return await anyio.Path(self._credentials_path).exists()

    async def state(self) -> AuthState:
        if await self.is_authenticated():
            return AuthState.AUTHENTICATED
        if await self.is_configured():
            return AuthState.CLIENT_DESCRIPTOR_PRESENT
        return AuthState.NO_CLIENT_DESCRIPTOR

    # ------------------------------------------------------------------
    # Client descriptor
    # ------------------------------------------------------------------

    async def save_client_descriptor(self, client_id: str, client_secret: str) -> ClientDescriptor:
        """Encrypt and store a desktop-app client descriptor.

        Raises:
            InvalidArgumentError: If either value is empty or whitespace.
        """
        if not client_id or not client_id.strip():
            raise InvalidArgumentError("client_id must not be empty or whitespace")
        if not client_secret or not client_secret.strip():
            raise InvalidArgumentError("client_secret must not be empty or whitespace")

        descriptor = ClientDescriptor(
            installed=InstalledClient(
                client_id=client_id.strip(),
                client_secret=client_secret.strip(),
            )
        )
        await self._store.save(CLIENT_DESCRIPTOR_KEY, descriptor.model_dump_json())
        logger.info("client_descriptor_saved")
        return descriptor

    async def load_client_descriptor(self) -> ClientDescriptor:
        """Load the client descriptor, preferring the store over the fallback file.

        The store always wins so a configured descriptor cannot be shadowed by
        a stray ``credentials.json``.

        Raises:
            ConfigurationMissingError: If neither source has a descriptor.
            pydantic.ValidationError: If the descriptor found is malformed.
        """
        stored = await self._store.load(CLIENT_DESCRIPTOR_KEY)
        if stored is not None:
            logger.debug("client_descriptor_loaded", source="store")
            return ClientDescriptor.model_validate_json(stored)

        path = anyio.Path(self._credentials_path)
        if not await path.exists():
            raise ConfigurationMissingError(self._credentials_path)

        logger.debug("client_descriptor_loaded", source="file", path=str(self._credentials_path))
        return ClientDescriptor.model_validate_json(await path.read_text(encoding="utf-8"))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def authenticate(self) -> bool:
        """Obtain a credential, restoring the stored session or running consent.

        Returns:
            ``True`` on success.  Every failure (missing configuration,
            consent error, refresh error) is logged and reported as ``False``.
        """
        async with self._lock:
            return await self._authenticate_locked() is not None

    async def reauth(self) -> bool:
        """Drop the local session without contacting Google, then authenticate again.

        The client descriptor is left untouched.
        """
        async with self._lock:
            self._credential = None
            await self._store.delete(SESSION_TOKEN_KEY)
            self._notify_invalidated()
            logger.info("session_cleared_for_reauth")
            return await self._authenticate_locked() is not None

    async def revoke(self) -> None:
        """Revoke the token with Google and delete the local session.

        A failed remote revocation is logged and ignored; local cleanup runs
        regardless, even if the caller is cancelled mid-request.
        """
        async with self._lock:
            creds = self._credential
            try:
                if creds is not None:
                    try:
                        await self._revoke_remote(creds)
                    except Exception:
                        logger.warning(
                            "remote_revocation_failed",
                            detail="clearing local tokens anyway",
                            exc_info=True,
                        )
            finally:
                with anyio.CancelScope(shield=True):
                    self._credential = None
                    await self._store.delete(SESSION_TOKEN_KEY)
                    self._notify_invalidated()
            logger.info("credentials_revoked")

    async def get_credential(self) -> Credentials:
        """Return a live credential, authenticating or refreshing as needed.

        Raises:
            AuthenticationRequiredError: If no credential can be obtained, or
                the cached one can no longer be refreshed.
        """
        async with self._lock:
            creds = self._credential
            if creds is None:
                creds = await self._authenticate_locked()
                if creds is None:
                    raise AuthenticationRequiredError()

            if _is_stale(creds):
                try:
                    await self._refresh(creds)
                except Exception as exc:
                    self._credential = None
                    logger.warning("token_refresh_failed", exc_info=True)
                    raise AuthenticationRequiredError() from exc
            return creds

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _authenticate_locked(self) -> Credentials | None:
        """Restore or obtain a credential and cache it; ``None`` on any failure."""
        try:
            descriptor = await self.load_client_descriptor()
            creds = await self._restore_session()
            if creds is None:
                creds = await self._consent_flow.obtain(descriptor, self._scopes)
                if _is_stale(creds):
                    await self._refresh(creds)
                else:
                    await self._persist(creds)
        except Exception:
            logger.error("authentication_failed", exc_info=True)
            return None

        self._credential = creds
        logger.info("authentication_succeeded")
        return creds

    async def _restore_session(self) -> Credentials | None:
        """Rebuild the persisted session, refreshing it if stale.

        An unreadable or unrefreshable session is discarded so the caller
        falls through to the consent flow.
        """
        blob = await self._store.load(SESSION_TOKEN_KEY)
        if blob is None:
            return None

        try:
            creds = Credentials.from_authorized_user_info(json.loads(blob), self._scopes)
            if _is_stale(creds):
                await self._refresh(creds)
        except Exception:
            logger.warning("stored_session_unusable", exc_info=True)
            return None

        logger.debug("session_restored")
        return creds

    async def _refresh(self, creds: Credentials) -> None:
        request = google.auth.transport.requests.Request()
        await anyio.to_thread.run_sync(creds.refresh, request)
        await self._persist(creds)
        logger.debug("token_refreshed")

    async def _persist(self, creds: Credentials) -> None:
        await self._store.save(SESSION_TOKEN_KEY, creds.to_json())

    async def _revoke_remote(self, creds: Credentials) -> None:
        token = creds.refresh_token or creds.token
        if not token:
            return

        if self._http_client is not None:
            await self._post_revoke(self._http_client, token)
            return
        async with httpx.AsyncClient(timeout=10.0) as client:
            await self._post_revoke(client, token)

    @staticmethod
    async def _post_revoke(client: httpx.AsyncClient, token: str) -> None:
        response = await client.post(
            GOOGLE_REVOKE_URI,
            data={"token": token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        response.raise_for_status()

    def _notify_invalidated(self) -> None:
        for listener in self._listeners:
            listener()
