"""Domain-specific exception classes for the email MCP server."""

from __future__ import annotations

from pathlib import Path


class EmailMcpError(Exception):
    """Base class for all domain errors in the email MCP server."""


class InvalidArgumentError(EmailMcpError, ValueError):
    """Raised when a required string input is empty or whitespace.

    Always raised synchronously, before any disk or network I/O.
    """


class ConfigurationMissingError(EmailMcpError):
    """Raised when no client descriptor exists in the store or the fallback file.

    Attributes:
        expected_path: Where the fallback ``credentials.json`` was looked for.
    """

    def __init__(self, expected_path: Path) -> None:
        self.expected_path = expected_path
        super().__init__(
            "Gmail credentials not configured. "
            "Please use the 'setup_gmail' tool to provide your Google OAuth Client ID "
            "and Client Secret, or place a credentials.json file at: "
            f"{expected_path}"
        )


class AuthenticationRequiredError(EmailMcpError):
    """Raised when no credential can be obtained without user interaction."""

    def __init__(self) -> None:
        super().__init__(
            "Gmail authentication required. Please run the auth_status tool first."
        )


class RemoteError(EmailMcpError):
    """Raised when a remote Gmail API call fails.

    Attributes:
        operation: The provider operation that issued the call.
        status: HTTP status code, if the failure carried one.
    """

    def __init__(self, operation: str, detail: str, status: int | None = None) -> None:
        self.operation = operation
        self.status = status
        super().__init__(f"{operation} failed: {detail}")


class NotFoundError(RemoteError):
    """Raised when the remote API reports that a resource does not exist."""
