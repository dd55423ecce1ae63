"""Domain types, models, and errors for the email MCP server."""

from email_mcp.domain.errors import (
    AuthenticationRequiredError,
    ConfigurationMissingError,
    EmailMcpError,
    InvalidArgumentError,
    NotFoundError,
    RemoteError,
)
from email_mcp.domain.models import (
    Attachment,
    ClientDescriptor,
    EmailAddress,
    EmailMessage,
    InstalledClient,
    Label,
    MessagePart,
    RawMessage,
    SearchQuery,
)
from email_mcp.domain.types import AuthState, AuthStatus

__all__ = [
    "Attachment",
    "AuthState",
    "AuthStatus",
    "AuthenticationRequiredError",
    "ClientDescriptor",
    "ConfigurationMissingError",
    "EmailAddress",
    "EmailMcpError",
    "EmailMessage",
    "InstalledClient",
    "InvalidArgumentError",
    "Label",
    "MessagePart",
    "NotFoundError",
    "RawMessage",
    "RemoteError",
    "SearchQuery",
]
