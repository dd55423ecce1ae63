"""Encrypted secret storage for client descriptors and session tokens."""

from email_mcp.security.protector import FernetProtector, Protector
from email_mcp.security.store import SecretStore, sanitize_key

__all__ = [
    "FernetProtector",
    "Protector",
    "SecretStore",
    "sanitize_key",
]
