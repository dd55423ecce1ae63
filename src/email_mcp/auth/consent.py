"""Interactive consent capability.

The credential lifecycle never knows how a user grants access; it hands a
client descriptor and a scope list to a ``ConsentFlow`` and gets back an
issued credential (or an exception).  ``InstalledAppConsentFlow`` is the
desktop implementation: it opens the browser on Google's consent page and
catches the redirect on a loopback port.
"""

from __future__ import annotations

from typing import Protocol

import anyio
import structlog
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow  # type: ignore[import-untyped]

from email_mcp.domain.models import ClientDescriptor

logger = structlog.get_logger()


class ConsentFlow(Protocol):
    """Given a client descriptor and scopes, produce a credential or fail."""

    async def obtain(self, descriptor: ClientDescriptor, scopes: list[str]) -> Credentials: ...


class InstalledAppConsentFlow:
    """Browser-based OAuth2 installed-app flow from ``google-auth-oauthlib``.

    The blocking local redirect server runs in a worker thread.  Cancelling
    the awaiting task abandons that thread instead of waiting for the user.

    Args:
        port: Loopback port for the redirect.  ``0`` picks a free one.
        open_browser: Whether to launch the system browser automatically.
    """

    def __init__(self, port: int = 0, open_browser: bool = True) -> None:
        self._port = port
        self._open_browser = open_browser

    async def obtain(self, descriptor: ClientDescriptor, scopes: list[str]) -> Credentials:
        flow = InstalledAppFlow.from_client_config(descriptor.model_dump(), scopes)
        logger.info("consent_flow_started", scopes=scopes)

        def _run() -> Credentials:
            creds: Credentials = flow.run_local_server(
                port=self._port, open_browser=self._open_browser
            )
            return creds

        return await anyio.to_thread.run_sync(_run, abandon_on_cancel=True)
