from typing import Annotated

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from mcp_imap_body.config import get_settings
from mcp_imap_body.emails import BodyStore
from mcp_imap_body.emails.models import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    FetchEmailBodyFailure,
    FetchEmailBodyRequest,
    FetchEmailBodySuccess,
)
from mcp_imap_body.emails.service import check_email_connection, fetch_email_body, invalid_request
from mcp_imap_body.emails.store import JsonFileBodyStore

mcp = FastMCP("imap-body")


def get_store() -> BodyStore | None:
    settings = get_settings()
    if settings.store_path is None:
        return None
    return JsonFileBodyStore(settings.store_path)


@mcp.tool(
    name="fetch_email_body",
    description="Fetch one email from an IMAP server by its stored message id, decode its text/HTML body and store it. "
    "The message id may be '<...>-<seq>-<timestamp>', '<email>|<folder>|<seq>' or a Message-ID header value.",
)
async def fetch_email_body_tool(
    imap_host: Annotated[str, Field(description="IMAP server hostname.")],
    email: Annotated[str, Field(description="Mailbox login, usually the email address.")],
    email_password: Annotated[str, Field(description="Mailbox password.")],
    message_id: Annotated[str, Field(description="The stored message id to resolve.")],
    imap_port: Annotated[int, Field(default=993, ge=1, le=65535, description="IMAP server port.")] = 993,
    imap_secure: Annotated[bool, Field(default=True, description="Use implicit TLS.")] = True,
    folder: Annotated[str | None, Field(default=None, description="The mailbox to select. Defaults to INBOX.")] = None,
) -> FetchEmailBodySuccess | FetchEmailBodyFailure:
    try:
        request = FetchEmailBodyRequest(
            imap_host=imap_host,
            imap_port=imap_port,
            imap_secure=imap_secure,
            email=email,
            email_password=email_password,
            folder=folder,
            message_id=message_id,
        )
    except ValidationError as e:
        return invalid_request(e)
    _, payload = await fetch_email_body(request, store=get_store())
    return payload


@mcp.tool(
    name="test_email_connection",
    description="Check that an email account can log in over IMAP. The host may be a provider name or domain "
    "(gmail, outlook, yahoo, zoho, hostinger) or an IMAP hostname.",
)
async def check_email_connection_tool(
    email: Annotated[str, Field(description="Mailbox login, usually the email address.")],
    password: Annotated[str, Field(description="Mailbox password.")],
    host: Annotated[str, Field(description="Provider hint or IMAP hostname.")],
) -> ConnectionTestResponse:
    return await check_email_connection(ConnectionTestRequest(email=email, password=password, host=host))
