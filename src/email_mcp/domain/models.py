"""Pydantic v2 models for the canonical mailbox model.

Provides frozen (immutable) models for addresses, attachments, messages,
labels, and search criteria, plus the provider-neutral MIME tree the mapper
consumes and the OAuth client descriptor persisted by the credential
lifecycle.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Canonical model
# ---------------------------------------------------------------------------


class EmailAddress(BaseModel):
    """An email address with an optional display name.

    Equality is structural, so two addresses parsed from different headers
    compare equal when both parts match.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    display_name: str | None = None

    @field_validator("address")
    @classmethod
    def address_must_not_be_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only addresses."""
        if not v.strip():
            raise ValueError("address must not be empty")
        return v

    def __str__(self) -> str:
        if not self.display_name or not self.display_name.strip():
            return self.address
        return f"{self.display_name} <{self.address}>"


class Attachment(BaseModel):
    """Attachment metadata; the content itself is fetched separately by id."""

    model_config = ConfigDict(frozen=True)

    filename: str
    mime_type: str
    size_bytes: int = 0
    attachment_id: str | None = None


class EmailMessage(BaseModel):
    """A mailbox message in provider-neutral form.

    ``body`` and ``body_html`` are ``None`` for summary fetches; they are only
    populated when full content was requested.  Recipient lists keep header
    order.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    thread_id: str
    subject: str | None = None
    from_: EmailAddress | None = Field(default=None, alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    date: datetime | None = None
    snippet: str | None = None
    body: str | None = None
    body_html: str | None = None
    is_unread: bool = False
    label_ids: list[str] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("id", "thread_id")
    @classmethod
    def ids_must_not_be_blank(cls, v: str) -> str:
        """Message and thread identifiers are always present."""
        if not v.strip():
            raise ValueError("message and thread ids must not be empty")
        return v


class Label(BaseModel):
    """A mailbox label (Gmail's equivalent of a folder)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: str | None = None
    unread_count: int | None = None
    total_count: int | None = None


class SearchQuery(BaseModel):
    """Criteria for a message search.

    ``max_results`` must be positive.  Clamping to the tool range happens at
    the tool boundary, not here.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    subject: str | None = None
    after: date | None = None
    before: date | None = None
    label_id: str | None = None
    max_results: int = Field(default=20, gt=0)


# ---------------------------------------------------------------------------
# Provider-neutral MIME tree
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    """Accepts the camelCase keys used by the Gmail REST representation."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Header(_CamelModel):
    name: str
    value: str = ""


class PartBody(_CamelModel):
    """Inline data (base64url) or attachment handle of a MIME part."""

    data: str | None = None
    size: int = 0
    attachment_id: str | None = None


class MessagePart(_CamelModel):
    """One node of a message's MIME tree."""

    mime_type: str | None = None
    filename: str | None = None
    headers: list[Header] = Field(default_factory=list)
    body: PartBody | None = None
    parts: list[MessagePart] = Field(default_factory=list)


class RawMessage(_CamelModel):
    """A message as fetched from the provider, before mapping."""

    id: str
    thread_id: str
    snippet: str | None = None
    label_ids: list[str] = Field(default_factory=list)
    payload: MessagePart | None = None


# ---------------------------------------------------------------------------
# OAuth client descriptor
# ---------------------------------------------------------------------------


class InstalledClient(BaseModel):
    """Desktop ("installed") OAuth client identity and provider endpoints."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"
    redirect_uris: list[str] = Field(default_factory=lambda: ["http://localhost"])


class ClientDescriptor(BaseModel):
    """The long-lived application identity, in Google's ``credentials.json`` shape.

    Serializes to ``{"installed": {...}}`` so the stored blob and the fallback
    file are interchangeable and can be handed to the consent flow as-is.
    """

    model_config = ConfigDict(frozen=True)

    installed: InstalledClient
