"""Gmail API provider: list, read, search, and label operations.

Provides ``GmailProvider``, which obtains a live credential from the
``CredentialLifecycle`` on every call, executes the request through the
Gmail API v1 service resource, and hands the raw JSON to the mapper.  The
blocking ``googleapiclient`` calls run in worker threads.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import anyio
import google.auth.exceptions
import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from email_mcp.auth.lifecycle import CredentialLifecycle
from email_mcp.domain.errors import InvalidArgumentError, NotFoundError, RemoteError
from email_mcp.domain.models import EmailMessage, Label, SearchQuery
from email_mcp.domain.types import PROVIDER_NAME
from email_mcp.gmail.mapper import to_email_message
from email_mcp.resilience.retry import resilient_api_call

logger = structlog.get_logger()

GMAIL_USER_ID: str = "me"
QUERY_DATE_FORMAT: str = "%Y/%m/%d"

ServiceFactory = Callable[[Credentials], Any]


def build_gmail_service(credentials: Credentials) -> Resource:
    """Build a Gmail API v1 service resource from bundled discovery data."""
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


def build_gmail_query(query: SearchQuery) -> str:
    """Render *query* in Gmail search syntax.

    Clauses appear in a fixed order (free text, ``from:``, ``to:``,
    ``subject:``, ``after:``, ``before:``) and empty fields are left out.
    The label filter is not part of the string; it is sent as ``labelIds``.
    """
    parts: list[str] = []

    if query.query and query.query.strip():
        parts.append(query.query)
    if query.from_ and query.from_.strip():
        parts.append(f"from:{query.from_}")
    if query.to and query.to.strip():
        parts.append(f"to:{query.to}")
    if query.subject and query.subject.strip():
        parts.append(f"subject:{query.subject}")
    if query.after is not None:
        parts.append(f"after:{query.after.strftime(QUERY_DATE_FORMAT)}")
    if query.before is not None:
        parts.append(f"before:{query.before.strftime(QUERY_DATE_FORMAT)}")

    return " ".join(parts)


@resilient_api_call("gmail")
async def _execute(request: Any) -> dict[str, Any]:
    result: dict[str, Any] = await anyio.to_thread.run_sync(request.execute)
    return result


class GmailProvider:
    """Stateless-per-call Gmail operations over the canonical model.

    The service resource is built lazily and cached together with the
    credential it was built from.  It is rebuilt when the lifecycle hands
    out a different credential and dropped whenever the lifecycle
    invalidates the session.

    Args:
        lifecycle: Source of live credentials.
        service_factory: Builds the API resource from a credential.
    """

    provider_name: str = PROVIDER_NAME

    def __init__(
        self,
        lifecycle: CredentialLifecycle,
        service_factory: ServiceFactory = build_gmail_service,
    ) -> None:
        self._lifecycle = lifecycle
        self._service_factory = service_factory
        self._service: Any = None
        self._service_credential: Credentials | None = None
        self._service_lock = anyio.Lock()
        lifecycle.add_invalidation_listener(self.invalidate)

    def invalidate(self) -> None:
        """Forget the cached service resource."""
        self._service = None
        self._service_credential = None
        logger.debug("gmail_service_invalidated")

    async def list_messages(
        self, max_results: int = 20, label_id: str | None = None
    ) -> list[EmailMessage]:
        """List recent messages as summaries (no bodies), in Gmail's order."""
        service = await self._get_service()
        params: dict[str, Any] = {"userId": GMAIL_USER_ID, "maxResults": max_results}
        if label_id and label_id.strip():
            params["labelIds"] = [label_id]

        response = await self._call("list_messages", service.users().messages().list(**params))
        messages = await self._fetch_summaries("list_messages", service, response)
        logger.debug("messages_listed", count=len(messages))
        return messages

    async def get_message(self, message_id: str) -> EmailMessage:
        """Fetch one message with its plain-text and HTML bodies decoded.

        Raises:
            InvalidArgumentError: If *message_id* is empty or whitespace.
            NotFoundError: If Gmail has no such message.
            RemoteError: For any other API failure.
        """
        if not message_id or not message_id.strip():
            raise InvalidArgumentError("message_id must not be empty or whitespace")

        service = await self._get_service()
        raw = await self._call(
            "get_message",
            service.users().messages().get(userId=GMAIL_USER_ID, id=message_id, format="full"),
        )
        logger.debug("message_retrieved", message_id=message_id)
        return to_email_message(raw, include_body=True)

    async def search_messages(self, query: SearchQuery) -> list[EmailMessage]:
        """Search with Gmail syntax built from *query*; results are summaries."""
        service = await self._get_service()
        q = build_gmail_query(query)
        params: dict[str, Any] = {"userId": GMAIL_USER_ID, "maxResults": query.max_results}
        if q:
            params["q"] = q
        if query.label_id and query.label_id.strip():
            params["labelIds"] = [query.label_id]

        response = await self._call("search_messages", service.users().messages().list(**params))
        messages = await self._fetch_summaries("search_messages", service, response)
        logger.debug("messages_searched", count=len(messages), query=q)
        return messages

    async def list_labels(self) -> list[Label]:
        service = await self._get_service()
        response = await self._call(
            "list_labels", service.users().labels().list(userId=GMAIL_USER_ID)
        )

        labels = [
            Label(
                id=item["id"],
                name=item["name"],
                type=item.get("type"),
                unread_count=item.get("messagesUnread"),
                total_count=item.get("messagesTotal"),
            )
            for item in response.get("labels") or []
        ]
        logger.debug("labels_listed", count=len(labels))
        return labels

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_service(self) -> Any:
        credential = await self._lifecycle.get_credential()
        async with self._service_lock:
            if self._service is None or self._service_credential is not credential:
                self._service = await anyio.to_thread.run_sync(self._service_factory, credential)
                self._service_credential = credential
                logger.debug("gmail_service_built")
            return self._service

    async def _fetch_summaries(
        self, operation: str, service: Any, response: dict[str, Any]
    ) -> list[EmailMessage]:
        messages: list[EmailMessage] = []
        for stub in response.get("messages") or []:
            full = await self._call(
                operation,
                service.users().messages().get(userId=GMAIL_USER_ID, id=stub["id"]),
            )
            messages.append(to_email_message(full))
        return messages

    @staticmethod
    async def _call(operation: str, request: Any) -> dict[str, Any]:
        """Execute *request*, translating API failures into domain errors."""
        try:
            return await _execute(request)
        except HttpError as exc:
            status = exc.resp.status
            if status == 404:
                raise NotFoundError(operation, str(exc.reason), status) from exc
            raise RemoteError(operation, str(exc.reason), status) from exc
        except (google.auth.exceptions.GoogleAuthError, OSError) as exc:
            raise RemoteError(operation, str(exc)) from exc
