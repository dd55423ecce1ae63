"""Resilience infrastructure for Gmail API calls."""

from email_mcp.resilience.retry import is_transient, resilient_api_call

__all__ = [
    "is_transient",
    "resilient_api_call",
]
