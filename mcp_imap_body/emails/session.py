"""Minimal IMAP4rev1 session for pulling one message's raw bytes.

Only what is needed to get from a greeting to a ``BODY[]`` literal is
implemented: LOGIN, SELECT, SEARCH HEADER Message-ID, FETCH and LOGOUT. Each
tagged command is awaited to completion before the next one is sent; there
is no pipelining, IDLE or UID addressing.
"""

import asyncio
import re
import ssl
from enum import Enum

from mcp_imap_body.config import Settings, get_settings
from mcp_imap_body.emails.errors import (
    IMAPArgumentError,
    IMAPAuthenticationError,
    IMAPConnectionError,
    IMAPLiteralError,
    IMAPMailboxError,
    SessionStateError,
)
from mcp_imap_body.emails.locator import resolve_sequence
from mcp_imap_body.emails.models import CommandResponse, MailboxCredentials, RawFetchResult
from mcp_imap_body.emails.stream import IMAPStream
from mcp_imap_body.log import logger

LITERAL_HEADER_RE = re.compile(rb"BODY(?:\.PEEK)?\[\]\s*\{(\d+)\}\r?\n", re.IGNORECASE)
SEARCH_RESULT_RE = re.compile(rb"^\*[ \t]+SEARCH((?:[ \t]+\d+)*)", re.IGNORECASE | re.MULTILINE)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"
    CLOSED = "closed"


def _quote(value: str) -> str:
    """Quote a string argument, escaping backslashes and double quotes (RFC 3501 section 9).

    CR, LF and NUL cannot appear in a quoted string and raise ``IMAPArgumentError``.
    """
    if any(c in value for c in "\r\n\0"):
        raise IMAPArgumentError(f"Argument contains a line break or NUL: {value!r}")
    escaped = value.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{escaped}"'


def _completion_re(tag: str) -> re.Pattern[bytes]:
    # Tagged completion at the start of the buffer or right after a line break
    return re.compile(rb"(?:^|\r?\n)" + re.escape(tag.encode()) + rb"[ \t]+(OK|NO|BAD)\b[^\r\n]*", re.IGNORECASE)


def _is_greeting(data: bytes) -> bool:
    stripped = data.lstrip()
    return stripped.startswith(b"*") and b"\r\n" in stripped


def _command_response(tag: str, data: bytes) -> CommandResponse:
    match = _completion_re(tag).search(data)
    if match is None:
        return CommandResponse(tag=tag, text=data.decode("latin-1"))
    return CommandResponse(
        tag=tag,
        status=match.group(1).decode("ascii").upper(),
        status_line=match.group(0).strip().decode("latin-1"),
        text=data.decode("latin-1"),
    )


async def open_stream(credentials: MailboxCredentials, settings: Settings) -> IMAPStream:
    ssl_context = ssl.create_default_context() if credentials.use_tls else None
    reader, writer = await asyncio.wait_for(
        asyncio.open_connection(credentials.host, credentials.port, ssl=ssl_context),
        settings.greeting_timeout,
    )
    return IMAPStream(reader, writer, read_timeout=settings.read_timeout, chunk_size=settings.read_chunk_size)


class IMAPSession:
    """One connection, one ordered sequence of request/response exchanges.

    Use as an async context manager so that LOGOUT and close run on every
    exit path::

        async with IMAPSession(credentials) as session:
            await session.login()
            await session.select("INBOX")
            raw = await session.fetch_raw(42)
    """

    def __init__(self, credentials: MailboxCredentials, settings: Settings | None = None):
        self.credentials = credentials
        self.settings = settings or get_settings()
        self.state = SessionState.DISCONNECTED
        self.greeting = ""
        self._stream: IMAPStream | None = None
        self._tag_counter = 0

    async def __aenter__(self) -> "IMAPSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.logout()

    def _check_state(self, command: str, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"{command} is not allowed in state '{self.state.value}' (expected {allowed})")

    def _require(self, command: str, *states: SessionState) -> IMAPStream:
        self._check_state(command, *states)
        if self._stream is None:
            raise SessionStateError(f"{command} requires an open connection")
        return self._stream

    def _next_tag(self) -> str:
        self._tag_counter += 1
        return f"A{self._tag_counter}"

    async def connect(self) -> None:
        self._check_state("CONNECT", SessionState.DISCONNECTED)
        host, port = self.credentials.host, self.credentials.port
        logger.info(f"Connecting to {host}:{port} (tls: {self.credentials.use_tls})")
        try:
            self._stream = await open_stream(self.credentials, self.settings)
        except (OSError, asyncio.TimeoutError, ValueError, OverflowError) as e:
            # ValueError covers UnicodeError from IDNA encoding of the host,
            # OverflowError an out of range port
            self.state = SessionState.CLOSED
            raise IMAPConnectionError(f"Could not connect to {host}:{port}: {e!s}") from e
        self.state = SessionState.CONNECTED

        try:
            greeting = await self._stream.read_until(_is_greeting, self.settings.greeting_timeout)
        except OSError as e:
            await self._close()
            raise IMAPConnectionError(f"Connection to {host}:{port} lost before greeting: {e!s}") from e
        self.greeting = greeting.decode("latin-1").strip()
        if not _is_greeting(greeting) or greeting.lstrip()[:5].upper() == b"* BYE":
            await self._close()
            raise IMAPConnectionError(
                f"No usable greeting from {host}:{port}", status_line=self.greeting[:200] or None
            )
        logger.debug(f"Server greeting: {self.greeting[:200]}")

    async def execute(self, command: str, log_as: str | None = None) -> CommandResponse:
        """Send one tagged command and read until its completion line or the command timeout."""
        stream = self._require(
            command.split(" ", 1)[0],
            SessionState.CONNECTED,
            SessionState.AUTHENTICATED,
            SessionState.SELECTED,
        )
        tag = self._next_tag()
        logger.debug(f"Sending: {tag} {log_as or command}")
        await stream.write_line(f"{tag} {command}".encode())

        completion = _completion_re(tag)
        data = await stream.read_until(lambda acc: completion.search(acc) is not None, self.settings.command_timeout)
        response = _command_response(tag, data)
        if response.status is None:
            logger.warning(f"No completion for {tag} within {self.settings.command_timeout:.0f}s")
        return response

    async def login(self, username: str | None = None, password: str | None = None) -> None:
        self._require("LOGIN", SessionState.CONNECTED)
        username = self.credentials.username if username is None else username
        password = self.credentials.password if password is None else password

        response = await self.execute(
            f"LOGIN {_quote(username)} {_quote(password)}",
            log_as=f"LOGIN {_quote(username)} <redacted>",
        )
        if not response.ok:
            raise IMAPAuthenticationError("IMAP login failed", status_line=response.status_line)
        self.state = SessionState.AUTHENTICATED

    async def select(self, folder: str) -> None:
        self._require("SELECT", SessionState.AUTHENTICATED, SessionState.SELECTED)
        response = await self.execute(f"SELECT {_quote(folder)}")
        if not response.ok:
            # The previously selected mailbox, if any, is deselected by a failed SELECT
            self.state = SessionState.AUTHENTICATED
            raise IMAPMailboxError(f"IMAP SELECT {folder!r} failed", status_line=response.status_line)
        self.state = SessionState.SELECTED

    async def search_message_id(self, value: str) -> int | None:
        """Return the first sequence number whose Message-ID header matches ``value``."""
        self._require("SEARCH", SessionState.SELECTED)
        response = await self.execute(f"SEARCH HEADER Message-ID {_quote(value)}")
        if not response.ok:
            logger.info(f"SEARCH for {value!r} failed: {response.status_line}")
            return None

        match = SEARCH_RESULT_RE.search(response.text.encode("latin-1"))
        numbers = match.group(1).split() if match else []
        if not numbers:
            return None
        return int(numbers[0])

    async def fetch_raw(self, seq: int) -> bytes:
        """Fetch the complete raw message at ``seq`` via a ``BODY.PEEK[]`` literal.

        The literal size announced by the server is authoritative: exactly
        that many bytes are returned however the server splits them across
        reads. Afterwards the rest of the response is drained until the
        tagged completion so the connection is in a clean state for LOGOUT;
        the drain is bounded and does not affect the returned bytes.
        """
        stream = self._require("FETCH", SessionState.SELECTED)
        tag = self._next_tag()
        logger.debug(f"Sending: {tag} FETCH {seq} (BODY.PEEK[])")
        await stream.write_line(f"{tag} FETCH {seq} (BODY.PEEK[])".encode())

        completion = _completion_re(tag)
        acc = await stream.read_until(
            lambda data: LITERAL_HEADER_RE.search(data) is not None or completion.search(data) is not None,
            self.settings.literal_header_timeout,
        )
        header = LITERAL_HEADER_RE.search(acc)
        if header is None:
            done = completion.search(acc)
            status_line = done.group(0).strip().decode("latin-1") if done else None
            raise IMAPLiteralError(f"Could not find BODY literal for message {seq}", status_line=status_line)

        size = int(header.group(1))
        raw, rest = await stream.read_exactly(size, self.settings.literal_timeout, acc[header.end() :])
        if len(raw) < size:
            raise IMAPLiteralError(f"BODY literal for message {seq} truncated: got {len(raw)} of {size} bytes")

        tail = await stream.read_until(
            lambda data: completion.search(data) is not None, self.settings.drain_timeout, rest
        )
        done = completion.search(tail)
        if done is None:
            logger.warning(f"FETCH {seq}: no tagged completion observed, continuing with captured literal")
        elif done.group(1).upper() != b"OK":
            logger.warning(f"FETCH {seq}: {done.group(0).strip().decode('latin-1')}")

        logger.info(f"Fetched message {seq} ({size} bytes)")
        return raw

    async def logout(self) -> None:
        """Send LOGOUT and close the socket. Errors are logged and ignored."""
        if self.state in (SessionState.DISCONNECTED, SessionState.CLOSED):
            return
        try:
            await self.execute("LOGOUT")
        except Exception as e:
            logger.info(f"Error during logout: {e!s}")
        finally:
            await self._close()

    async def _close(self) -> None:
        if self._stream is not None:
            await self._stream.close()
            self._stream = None
        self.state = SessionState.CLOSED


async def fetch_raw_message(
    credentials: MailboxCredentials,
    folder: str,
    locator: str,
    settings: Settings | None = None,
) -> RawFetchResult | None:
    """Log in, select ``folder``, resolve ``locator`` and fetch the raw message.

    Returns None when the locator cannot be resolved to a sequence number; no
    FETCH is sent in that case. Connection, login, mailbox and literal
    failures raise the corresponding ``MailFetchError``.
    """
    async with IMAPSession(credentials, settings) as session:
        await session.login()
        await session.select(folder)

        match = await resolve_sequence(session, locator)
        if match is None:
            logger.info(f"Email not found, message_id: {locator}")
            return None

        logger.info(f"Found email at seq {match.seq} via {match.strategy.value} in {folder}")
        raw = await session.fetch_raw(match.seq)
        return RawFetchResult(seq=match.seq, strategy=match.strategy, raw=raw)
