"""Command line entry point for mcp-imap-body."""

import asyncio
from http import HTTPStatus
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from mcp_imap_body import __version__
from mcp_imap_body.app import get_store, mcp
from mcp_imap_body.emails.models import ConnectionTestRequest, FetchEmailBodyRequest
from mcp_imap_body.emails.service import check_email_connection, fetch_email_body, invalid_request

app = typer.Typer(
    name="mcp-imap-body",
    help="Fetch and decode single email bodies over IMAP",
    no_args_is_help=True,
)

EXIT_CODES = {HTTPStatus.OK: 0, HTTPStatus.NOT_FOUND: 2}


@app.command()
def stdio():
    """Run the MCP server on stdio."""
    mcp.run(transport="stdio")


@app.command()
def fetch(
    host: Annotated[str, typer.Option("--host", help="IMAP server hostname")],
    email: Annotated[str, typer.Option("--email", help="Mailbox login")],
    password: Annotated[str, typer.Option("--password", envvar="MCP_IMAP_BODY_PASSWORD", help="Mailbox password")],
    message_id: Annotated[str, typer.Option("--message-id", help="Stored message id to resolve")],
    port: Annotated[int, typer.Option("--port", help="IMAP server port")] = 993,
    tls: Annotated[bool, typer.Option("--tls/--no-tls", help="Use implicit TLS")] = True,
    folder: Annotated[Optional[str], typer.Option("--folder", help="Mailbox to select [default: INBOX]")] = None,
):
    """Fetch one message body and print the result as JSON."""
    try:
        request = FetchEmailBodyRequest(
            imap_host=host,
            imap_port=port,
            imap_secure=tls,
            email=email,
            email_password=password,
            folder=folder,
            message_id=message_id,
        )
    except ValidationError as e:
        typer.echo(invalid_request(e).model_dump_json(by_alias=True, indent=2))
        raise typer.Exit(code=1) from e

    status, payload = asyncio.run(fetch_email_body(request, store=get_store()))
    typer.echo(payload.model_dump_json(by_alias=True, exclude_none=True, indent=2))
    raise typer.Exit(code=EXIT_CODES.get(status, 1))


@app.command("test-connection")
def test_connection(
    email: Annotated[str, typer.Option("--email", help="Mailbox login")],
    password: Annotated[str, typer.Option("--password", envvar="MCP_IMAP_BODY_PASSWORD", help="Mailbox password")],
    host: Annotated[str, typer.Option("--host", help="Provider hint or IMAP hostname")] = "",
):
    """Check that an account can log in."""
    result = asyncio.run(check_email_connection(ConnectionTestRequest(email=email, password=password, host=host)))
    typer.echo(result.model_dump_json(by_alias=True, exclude_none=True, indent=2))
    raise typer.Exit(code=0 if result.is_active else 1)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"mcp-imap-body version {__version__}")


if __name__ == "__main__":
    app()
