"""Domain enumerations and well-known Gmail identifiers."""

from enum import StrEnum


class AuthState(StrEnum):
    """Where the credential lifecycle currently stands for the single account."""

    NO_CLIENT_DESCRIPTOR = "no_client_descriptor"
    CLIENT_DESCRIPTOR_PRESENT = "client_descriptor_present"
    AUTHENTICATED = "authenticated"


class AuthStatus(StrEnum):
    """Outcome reported by the ``auth_status`` tool."""

    NOT_CONFIGURED = "not_configured"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


# Gmail system label reserved for unread messages
UNREAD_LABEL_ID: str = "UNREAD"

DEFAULT_ATTACHMENT_MIME_TYPE: str = "application/octet-stream"

PROVIDER_NAME: str = "Gmail"
