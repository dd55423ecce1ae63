"""OAuth2 credential lifecycle and the consent capability it depends on."""

from email_mcp.auth.consent import ConsentFlow, InstalledAppConsentFlow
from email_mcp.auth.lifecycle import (
    CLIENT_DESCRIPTOR_KEY,
    SESSION_TOKEN_KEY,
    CredentialLifecycle,
)

__all__ = [
    "CLIENT_DESCRIPTOR_KEY",
    "SESSION_TOKEN_KEY",
    "ConsentFlow",
    "CredentialLifecycle",
    "InstalledAppConsentFlow",
]
