"""Application entry point: composition root and MCP stdio server.

Configures:
- **structlog** with JSON rendering (production) or plain console
  (development), always written to stderr because stdout carries the MCP
  protocol
- **SecretStore** with the Fernet protector for at-rest encryption
- **CredentialLifecycle** with the browser-based consent flow
- **GmailProvider** subscribed to the lifecycle's invalidation events
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

import structlog

from email_mcp.auth.consent import ConsentFlow, InstalledAppConsentFlow
from email_mcp.auth.lifecycle import CredentialLifecycle
from email_mcp.config import Settings, get_settings
from email_mcp.gmail.provider import GmailProvider
from email_mcp.security.protector import FernetProtector, Protector
from email_mcp.security.store import SecretStore

logger = structlog.get_logger()


def configure_logging(production: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: uncolored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="email-mcp")


@dataclass
class ServiceContext:
    """Everything the tools need, owned by the composition root."""

    settings: Settings
    store: SecretStore
    lifecycle: CredentialLifecycle
    provider: GmailProvider


def build_context(
    settings: Settings | None = None,
    protector: Protector | None = None,
    consent_flow: ConsentFlow | None = None,
) -> ServiceContext:
    """Wire the secret store, credential lifecycle, and Gmail provider.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.
        protector: Encryption capability.  Defaults to a ``FernetProtector``
            keyed from ``settings.resolved_keys_dir()``.
        consent_flow: Interactive consent capability.  Defaults to the
            browser-based installed-app flow.

    Returns:
        The wired ``ServiceContext``.
    """
    if settings is None:
        settings = get_settings()

    store = SecretStore(
        settings.resolved_token_dir(),
        protector or FernetProtector(keys_dir=settings.resolved_keys_dir()),
    )
    lifecycle = CredentialLifecycle(
        store=store,
        consent_flow=consent_flow or InstalledAppConsentFlow(),
        credentials_path=settings.resolved_credentials_path(),
        scopes=settings.gmail_scopes,
    )
    provider = GmailProvider(lifecycle)

    logger.info(
        "services_initialized",
        token_dir=str(settings.resolved_token_dir()),
        credentials_path=str(settings.resolved_credentials_path()),
    )
    return ServiceContext(settings=settings, store=store, lifecycle=lifecycle, provider=provider)


def main() -> None:
    """Main entry point: wire services and serve MCP tools over stdio."""
    from email_mcp.tools.server import create_server

    settings = get_settings()
    configure_logging(production=settings.production)
    logger.info("Application starting")

    context = build_context(settings)
    create_server(context).run()


if __name__ == "__main__":
    main()
