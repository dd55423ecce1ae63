"""Shapes returned to the tool layer.

Summaries (list/search) and the full message (read) are plain dicts with the
PascalCase keys the tools have always emitted, rendered to indented JSON.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from email_mcp.domain.models import EmailAddress, EmailMessage, Label

MIN_MAX_RESULTS: int = 1
MAX_MAX_RESULTS: int = 50

SUMMARY_DATE_FORMAT: str = "%Y-%m-%d %H:%M"
FULL_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"


def clamp_max_results(value: int) -> int:
    """Clamp a requested page size into ``[1, 50]``."""
    return max(MIN_MAX_RESULTS, min(MAX_MAX_RESULTS, value))


def parse_tool_date(value: str | None) -> date | None:
    """Parse a ``yyyy-MM-dd`` (or ISO datetime) argument; ``None`` if unreadable."""
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_address(address: EmailAddress | None) -> str | None:
    return str(address) if address is not None else None


def format_offset(moment: datetime) -> str:
    """Render the UTC offset as ``+hh:mm``."""
    offset = moment.utcoffset()
    if offset is None:
        return "+00:00"
    total_minutes = int(offset.total_seconds()) // 60
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def message_summary(message: EmailMessage, include_labels: bool = True) -> dict[str, Any]:
    """Summary shape used by ``list_emails`` and ``search_emails``."""
    summary: dict[str, Any] = {
        "Id": message.id,
        "Subject": message.subject,
        "From": format_address(message.from_),
        "Date": message.date.strftime(SUMMARY_DATE_FORMAT) if message.date else None,
        "Snippet": message.snippet,
        "IsUnread": message.is_unread,
    }
    if include_labels:
        summary["Labels"] = list(message.label_ids)
    return summary


def message_detail(message: EmailMessage) -> dict[str, Any]:
    """Full shape used by ``read_email``."""
    return {
        "Id": message.id,
        "ThreadId": message.thread_id,
        "Subject": message.subject,
        "From": format_address(message.from_),
        "To": [str(a) for a in message.to],
        "Cc": [str(a) for a in message.cc],
        "Date": (
            f"{message.date.strftime(FULL_DATE_FORMAT)} {format_offset(message.date)}"
            if message.date
            else None
        ),
        "Body": message.body,
        "IsUnread": message.is_unread,
        "Labels": list(message.label_ids),
        "Attachments": [
            {
                "Filename": a.filename,
                "MimeType": a.mime_type,
                "Size": a.size_bytes,
            }
            for a in message.attachments
        ],
    }


def label_summary(label: Label) -> dict[str, Any]:
    return {
        "Id": label.id,
        "Name": label.name,
        "Type": label.type,
        "UnreadCount": label.unread_count,
        "TotalCount": label.total_count,
    }


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)
