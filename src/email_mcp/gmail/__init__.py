"""Gmail provider: API operations and raw-message mapping."""

from email_mcp.gmail.mapper import (
    extract_attachments,
    extract_body,
    parse_date,
    parse_email_address,
    parse_email_addresses,
    to_email_message,
)
from email_mcp.gmail.provider import GmailProvider, build_gmail_query

__all__ = [
    "GmailProvider",
    "build_gmail_query",
    "extract_attachments",
    "extract_body",
    "parse_date",
    "parse_email_address",
    "parse_email_addresses",
    "to_email_message",
]
