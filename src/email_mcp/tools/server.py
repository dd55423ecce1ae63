"""MCP tool surface over stdio.

Each tool is a thin pass-through to the credential lifecycle or the Gmail
provider and returns indented JSON text.  The implementations take the
``ServiceContext`` explicitly; ``create_server`` binds them to one context
and registers them with FastMCP.  Run ``auth_status`` first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import FastMCP

from email_mcp.domain.models import SearchQuery
from email_mcp.domain.types import AuthStatus
from email_mcp.tools.formatting import (
    clamp_max_results,
    label_summary,
    message_detail,
    message_summary,
    parse_tool_date,
    to_json,
)

if TYPE_CHECKING:
    from email_mcp.app import ServiceContext

logger = structlog.get_logger()

SERVER_NAME: str = "email-mcp"

GOOGLE_CLIENT_ID_SUFFIX: str = ".apps.googleusercontent.com"

SETUP_INSTRUCTIONS: list[str] = [
    "1. Go to https://console.cloud.google.com/",
    "2. Create a new project (or select an existing one) from the top dropdown",
    "3. In the left menu, go to 'APIs & Services' -> 'Library'",
    "4. Search for 'Gmail API' and click 'Enable'",
    "5. Go to 'APIs & Services' -> 'OAuth consent screen'",
    "6. Choose 'External' user type, click 'Create'",
    "7. Fill in the App name (e.g. 'Email MCP'), your email, and save",
    "8. On the 'Test users' page, click 'Add users' and add your Gmail address, then save",
    "9. Go to 'APIs & Services' -> 'Credentials'",
    "10. Click 'Create Credentials' -> 'OAuth client ID'",
    "11. Choose 'Desktop app' as application type, give it a name, click 'Create'",
    "12. Copy the 'Client ID' and 'Client Secret' shown in the popup",
]

# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------


async def auth_status(context: ServiceContext, force_reauth: bool = False) -> str:
    """Report configuration/authentication state, authenticating when needed."""
    lifecycle = context.lifecycle
    provider_name = context.provider.provider_name

    if not await lifecycle.is_configured():
        return to_json(
            {
                "Provider": provider_name,
                "Status": AuthStatus.NOT_CONFIGURED.value,
                "Message": (
                    "Gmail credentials are not configured. "
                    "Please follow these steps to set up Gmail API access:"
                ),
                "SetupInstructions": SETUP_INSTRUCTIONS,
                "NextStep": (
                    "Once you have the Client ID and Client Secret, "
                    "use the 'setup_gmail' tool to provide them."
                ),
            }
        )

    if force_reauth:
        await lifecycle.revoke()

    if not await lifecycle.is_authenticated():
        success = await lifecycle.authenticate()
        status = AuthStatus.AUTHENTICATED if success else AuthStatus.FAILED
        return to_json(
            {
                "Provider": provider_name,
                "Status": status.value,
                "Message": (
                    "Successfully authenticated. You can now use email tools."
                    if success
                    else "Authentication failed. Please check your credentials and try again."
                ),
            }
        )

    return to_json(
        {
            "Provider": provider_name,
            "Status": AuthStatus.AUTHENTICATED.value,
            "Message": "Already authenticated. Email tools are ready to use.",
        }
    )


def _setup_result(success: bool, message: str) -> str:
    return to_json({"Success": success, "Message": message})


async def setup_gmail(context: ServiceContext, client_id: str, client_secret: str) -> str:
    """Validate and store the OAuth client id/secret as the client descriptor."""
    if not client_id or not client_id.strip():
        return _setup_result(False, "Client ID is required.")
    if not client_secret or not client_secret.strip():
        return _setup_result(False, "Client Secret is required.")
    if GOOGLE_CLIENT_ID_SUFFIX not in client_id:
        return _setup_result(
            False,
            "Client ID doesn't look right. It should end with "
            f"'{GOOGLE_CLIENT_ID_SUFFIX}'. Make sure you're using the OAuth Client ID, "
            "not the project ID.",
        )

    await context.lifecycle.save_client_descriptor(client_id, client_secret)
    return _setup_result(
        True,
        "Gmail credentials saved and encrypted. Now use the 'auth_status' tool to "
        "authenticate with your Google account. This will open a browser window for "
        "you to sign in.",
    )


async def list_emails(
    context: ServiceContext, max_results: int = 20, label_id: str | None = None
) -> str:
    messages = await context.provider.list_messages(clamp_max_results(max_results), label_id)
    return to_json([message_summary(m) for m in messages])


async def read_email(context: ServiceContext, message_id: str) -> str:
    message = await context.provider.get_message(message_id)
    return to_json(message_detail(message))


async def search_emails(
    context: ServiceContext,
    query: str | None = None,
    from_address: str | None = None,
    to_address: str | None = None,
    subject: str | None = None,
    after: str | None = None,
    before: str | None = None,
    label_id: str | None = None,
    max_results: int = 20,
) -> str:
    """Search with free text and/or field filters; dates are ``yyyy-MM-dd``."""
    search = SearchQuery(
        query=query,
        from_=from_address,
        to=to_address,
        subject=subject,
        after=parse_tool_date(after),
        before=parse_tool_date(before),
        label_id=label_id,
        max_results=clamp_max_results(max_results),
    )
    messages = await context.provider.search_messages(search)
    return to_json([message_summary(m, include_labels=False) for m in messages])


async def list_labels(context: ServiceContext) -> str:
    labels = await context.provider.list_labels()
    return to_json([label_summary(label) for label in labels])


async def revoke_auth(context: ServiceContext) -> str:
    await context.lifecycle.revoke()
    return to_json(
        {
            "Provider": context.provider.provider_name,
            "Success": True,
            "Message": (
                "OAuth token revoked and local tokens deleted. "
                "Run 'auth_status' to re-authenticate when ready."
            ),
        }
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def create_server(context: ServiceContext) -> FastMCP:
    """Build the FastMCP server with every tool bound to *context*."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(
        name="auth_status",
        description=(
            "Checks authentication status for the email provider. "
            "If not configured, instructs the user to run 'setup_gmail' first. "
            "If configured but not authenticated, initiates the OAuth flow which opens "
            "a browser for consent. Run this tool first before using any other email tools."
        ),
    )
    async def _auth_status(force_reauth: bool = False) -> str:
        return await auth_status(context, force_reauth)

    @mcp.tool(
        name="setup_gmail",
        description=(
            "Sets up Gmail credentials for the email MCP server. Requires a Google OAuth "
            "Client ID and Client Secret from Google Cloud Console (Desktop app). These values "
            "are encrypted and stored locally; they never leave your machine."
        ),
    )
    async def _setup_gmail(client_id: str, client_secret: str) -> str:
        return await setup_gmail(context, client_id, client_secret)

    @mcp.tool(
        name="list_emails",
        description=(
            "Lists recent emails from the inbox. Optionally filter by label ID "
            "(e.g., 'INBOX', 'SENT', 'DRAFT'). Returns email ID, subject, sender, date, "
            "and snippet for each message. max_results is clamped to 1-50."
        ),
    )
    async def _list_emails(max_results: int = 20, label_id: str | None = None) -> str:
        return await list_emails(context, max_results, label_id)

    @mcp.tool(
        name="read_email",
        description=(
            "Reads a specific email by its message ID. Returns the full email content "
            "including body, headers, attachments info, and labels. Use list_emails or "
            "search_emails first to find message IDs."
        ),
    )
    async def _read_email(message_id: str) -> str:
        return await read_email(context, message_id)

    @mcp.tool(
        name="search_emails",
        description=(
            "Searches emails using a query string. Supports Gmail search syntax "
            "(e.g., 'from:john subject:meeting after:2025/01/01'). Can also filter by "
            "individual fields: sender, recipient, subject, date range (yyyy-MM-dd), and label."
        ),
    )
    async def _search_emails(
        query: str | None = None,
        from_address: str | None = None,
        to_address: str | None = None,
        subject: str | None = None,
        after: str | None = None,
        before: str | None = None,
        label_id: str | None = None,
        max_results: int = 20,
    ) -> str:
        return await search_emails(
            context, query, from_address, to_address, subject, after, before, label_id, max_results
        )

    @mcp.tool(
        name="list_labels",
        description=(
            "Lists all email labels/folders available in the account. Returns label IDs "
            "and names. Use label IDs with list_emails or search_emails to filter by label."
        ),
    )
    async def _list_labels() -> str:
        return await list_labels(context)

    @mcp.tool(
        name="revoke_auth",
        description=(
            "Fully revokes the OAuth token with Google and deletes all locally stored tokens. "
            "After revoking, run 'auth_status' to re-authenticate. This does NOT delete the "
            "stored client credentials (Client ID / Secret); use 'setup_gmail' to change those."
        ),
    )
    async def _revoke_auth() -> str:
        return await revoke_auth(context)

    logger.debug("mcp_tools_registered", server=SERVER_NAME)
    return mcp
