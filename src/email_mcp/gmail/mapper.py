"""Map Gmail API messages onto the canonical ``EmailMessage`` model.

Pure functions: no I/O, no state.  Every parser here is tolerant; a header
that cannot be understood degrades to ``None`` or to its raw text, and a
message with no payload at all still maps to a valid ``EmailMessage``.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any

from email_mcp.domain.models import (
    Attachment,
    EmailAddress,
    EmailMessage,
    Header,
    MessagePart,
    RawMessage,
)
from email_mcp.domain.types import DEFAULT_ATTACHMENT_MIME_TYPE, UNREAD_LABEL_ID

TEXT_PLAIN: str = "text/plain"
TEXT_HTML: str = "text/html"


def to_email_message(
    message: RawMessage | Mapping[str, Any],
    include_body: bool = False,
) -> EmailMessage:
    """Convert a Gmail message into an ``EmailMessage``.

    Args:
        message: A ``RawMessage`` or the JSON dict returned by
            ``users.messages.get``.
        include_body: Decode ``text/plain`` and ``text/html`` bodies.  When
            ``False`` both bodies are ``None``.

    Returns:
        The canonical message.
    """
    raw = message if isinstance(message, RawMessage) else RawMessage.model_validate(message)
    payload = raw.payload
    headers = payload.headers if payload is not None else []

    return EmailMessage(
        id=raw.id,
        thread_id=raw.thread_id,
        subject=get_header(headers, "Subject"),
        from_=parse_email_address(get_header(headers, "From")),
        to=parse_email_addresses(get_header(headers, "To")),
        cc=parse_email_addresses(get_header(headers, "Cc")),
        bcc=parse_email_addresses(get_header(headers, "Bcc")),
        date=parse_date(get_header(headers, "Date")),
        snippet=raw.snippet,
        body=extract_body(payload, TEXT_PLAIN) if include_body else None,
        body_html=extract_body(payload, TEXT_HTML) if include_body else None,
        is_unread=UNREAD_LABEL_ID in raw.label_ids,
        label_ids=list(raw.label_ids),
        attachments=extract_attachments(payload),
    )


def get_header(headers: list[Header], name: str) -> str | None:
    """Return the value of the first header named *name* (case-insensitive)."""
    wanted = name.casefold()
    for header in headers:
        if header.name.casefold() == wanted:
            return header.value
    return None


def parse_email_address(raw: str | None) -> EmailAddress | None:
    """Parse ``"Display Name <address>"`` or a bare address.

    Anything that does not parse as an address is kept verbatim (trimmed) as
    a bare address, so a sender is never lost.  Blank input yields ``None``.
    """
    if raw is None or not raw.strip():
        return None

    name, address = parseaddr(raw)
    if address and "@" in address:
        return EmailAddress(address=address, display_name=name or None)
    return EmailAddress(address=raw.strip())


def parse_email_addresses(raw: str | None) -> list[EmailAddress]:
    """Parse a comma-separated address header, keeping header order."""
    if raw is None or not raw.strip():
        return []

    addresses: list[EmailAddress] = []
    for entry in raw.split(","):
        parsed = parse_email_address(entry.strip())
        if parsed is not None:
            addresses.append(parsed)
    return addresses


def parse_date(raw: str | None) -> datetime | None:
    """Parse an RFC 2822 (or ISO 8601) date; ``None`` when it cannot be read.

    Dates without offset information are taken to be UTC.
    """
    if raw is None or not raw.strip():
        return None

    parsed: datetime
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError, OverflowError):
        try:
            parsed = datetime.fromisoformat(raw.strip())
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def decode_base64url(data: str) -> str:
    """Decode Gmail's unpadded base64url body data to UTF-8 text.

    Raises:
        binascii.Error: If *data* is not valid base64 after re-padding.
    """
    standard = data.replace("-", "+").replace("_", "/")
    remainder = len(standard) % 4
    if remainder == 2:
        standard += "=="
    elif remainder == 3:
        standard += "="
    return base64.b64decode(standard).decode("utf-8", errors="replace")


def extract_body(part: MessagePart | None, mime_type: str) -> str | None:
    """Depth-first search for the first part of *mime_type* carrying inline data.

    Children are visited in their natural order; parts whose data cannot be
    decoded are skipped.
    """
    if part is None:
        return None

    if (
        part.mime_type is not None
        and part.mime_type.casefold() == mime_type.casefold()
        and part.body is not None
        and part.body.data is not None
    ):
        try:
            return decode_base64url(part.body.data)
        except binascii.Error:
            pass

    for child in part.parts:
        body = extract_body(child, mime_type)
        if body is not None:
            return body
    return None


def extract_attachments(payload: MessagePart | None) -> list[Attachment]:
    """Collect attachments from the top-level part's direct children.

    Only children with a non-empty filename count; nested multiparts are not
    walked.
    """
    if payload is None:
        return []

    attachments: list[Attachment] = []
    for part in payload.parts:
        if not part.filename:
            continue
        attachments.append(
            Attachment(
                filename=part.filename,
                mime_type=part.mime_type or DEFAULT_ATTACHMENT_MIME_TYPE,
                size_bytes=part.body.size if part.body is not None else 0,
                attachment_id=part.body.attachment_id if part.body is not None else None,
            )
        )
    return attachments
