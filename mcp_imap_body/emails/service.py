import asyncio
from http import HTTPStatus

from pydantic import ValidationError

from mcp_imap_body.config import Settings, get_settings, resolve_imap_settings
from mcp_imap_body.emails import BodyStore
from mcp_imap_body.emails.errors import MailFetchError
from mcp_imap_body.emails.mime import describe_message, extract_body
from mcp_imap_body.emails.models import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    FetchEmailBodyFailure,
    FetchEmailBodyRequest,
    FetchEmailBodySuccess,
    MailboxCredentials,
    StoredBody,
)
from mcp_imap_body.emails.session import IMAPSession, fetch_raw_message
from mcp_imap_body.log import logger

NOT_FOUND_ERROR = "Email not found on server"


def invalid_request(error: ValidationError) -> FetchEmailBodyFailure:
    """Failure payload for request fields that did not validate."""
    problems = "; ".join(f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in error.errors())
    logger.info(f"Invalid fetch request: {problems}")
    return FetchEmailBodyFailure(error=f"Invalid request: {problems}")


async def fetch_email_body(
    request: FetchEmailBodyRequest,
    store: BodyStore | None = None,
    settings: Settings | None = None,
) -> tuple[HTTPStatus, FetchEmailBodySuccess | FetchEmailBodyFailure]:
    """Fetch, decode and store the body of one message.

    Every failure is turned into a ``FetchEmailBodyFailure`` here; nothing
    propagates to the caller. A locator that cannot be resolved is NOT_FOUND,
    everything else that goes wrong is INTERNAL_SERVER_ERROR.
    """
    settings = settings or get_settings()
    folder = request.folder or settings.default_folder
    logger.info(f"Looking for email with messageId: {request.message_id} in folder: {folder}")

    try:
        result = await fetch_raw_message(request.credentials(), folder, request.message_id, settings)
    except (MailFetchError, OSError, asyncio.TimeoutError) as e:
        logger.error(f"Error fetching email body: {e!s}")
        return HTTPStatus.INTERNAL_SERVER_ERROR, FetchEmailBodyFailure(error=str(e) or type(e).__name__)

    if result is None:
        return HTTPStatus.NOT_FOUND, FetchEmailBodyFailure(error=NOT_FOUND_ERROR)

    body = extract_body(result.raw)
    if store is not None:
        try:
            await store.update_body(StoredBody.from_decoded(request.email, request.message_id, body))
        except Exception as e:
            logger.error(f"DB update error: {e!s}")

    diagnostics = describe_message(result.raw, body) if settings.include_diagnostics else None
    return HTTPStatus.OK, FetchEmailBodySuccess(
        seq=result.seq,
        has_attachments=body.has_attachments,
        has_body=body.has_body,
        diagnostics=diagnostics,
    )


async def check_email_connection(
    request: ConnectionTestRequest,
    settings: Settings | None = None,
) -> ConnectionTestResponse:
    """Check that the credentials can log in to the IMAP server of the hinted provider."""
    if not request.email or not request.password:
        return ConnectionTestResponse(success=False, error="Email and password are required")

    settings = settings or get_settings()
    preset = resolve_imap_settings(request.host)
    logger.info(f"Testing email connection for: {request.email} ({preset.imap_host}:{preset.imap_port})")
    credentials = MailboxCredentials(
        host=preset.imap_host,
        port=preset.imap_port,
        use_tls=preset.imap_secure,
        username=request.email,
        password=request.password,
    )

    error: str | None = None
    try:
        async with IMAPSession(credentials, settings) as session:
            await session.login()
    except (MailFetchError, OSError, asyncio.TimeoutError) as e:
        error = str(e) or "Login failed - invalid credentials or access denied"
        logger.info(f"Login failed for {request.email}: {error}")

    return ConnectionTestResponse(
        success=True,
        is_active=error is None,
        error=error,
        imap_host=preset.imap_host,
        imap_port=preset.imap_port,
    )
