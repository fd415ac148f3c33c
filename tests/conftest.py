import asyncio
from collections import deque
from collections.abc import Callable
from unittest.mock import patch

import pytest

from mcp_imap_body.config import Settings
from mcp_imap_body.emails.stream import IMAPStream

Responder = Callable[[str, str], list[bytes]]


def split_into(data: bytes, pieces: int) -> list[bytes]:
    """Split ``data`` into ``pieces`` contiguous chunks of roughly equal size."""
    size, extra = divmod(len(data), pieces)
    chunks, start = [], 0
    for i in range(pieces):
        end = start + size + (1 if i < extra else 0)
        chunks.append(data[start:end])
        start = end
    return [c for c in chunks if c]


class FakeReader:
    """Hands out queued chunks one per read; stalls when empty so read timeouts fire."""

    def __init__(self):
        self.chunks: deque[bytes] = deque()
        self.eof = False
        self.reads = 0

    def feed(self, *chunks: bytes) -> None:
        self.chunks.extend(c for c in chunks if c)

    async def read(self, n: int) -> bytes:
        self.reads += 1
        if self.chunks:
            chunk = self.chunks.popleft()
            if len(chunk) > n:
                self.chunks.appendleft(chunk[n:])
                chunk = chunk[:n]
            return chunk
        if self.eof:
            return b""
        await asyncio.sleep(3600)
        return b""


class FakeWriter:
    def __init__(self, server: "FakeIMAPServer"):
        self.server = server
        self.closed = False
        self.buffer = b""

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionResetError("write on closed connection")
        self.buffer += data
        while b"\r\n" in self.buffer:
            line, self.buffer = self.buffer.split(b"\r\n", 1)
            self.server.handle(line.decode("utf-8"))

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


class FakeIMAPServer:
    """Scripted IMAP server: answers each tagged command from ``responses``.

    A response is either a list of byte chunks, where ``{tag}`` is replaced by
    the command's tag, or a callable ``(tag, command) -> chunks``.
    """

    DEFAULT_RESPONSES = {
        "LOGIN": [b"{tag} OK LOGIN completed\r\n"],
        "SELECT": [b"* 3 EXISTS\r\n* 0 RECENT\r\n{tag} OK [READ-WRITE] SELECT completed\r\n"],
        "SEARCH": [b"* SEARCH\r\n{tag} OK SEARCH completed\r\n"],
        "LOGOUT": [b"* BYE logging out\r\n{tag} OK LOGOUT completed\r\n"],
    }

    def __init__(self, greeting: bytes | None = b"* OK IMAP4rev1 Service Ready\r\n"):
        self.reader = FakeReader()
        self.writer = FakeWriter(self)
        self.responses: dict[str, list[bytes] | Responder] = dict(self.DEFAULT_RESPONSES)
        self.commands: list[str] = []
        self.tags: list[str] = []
        self.credentials = None
        if greeting:
            self.reader.feed(greeting)

    def respond(self, verb: str, response: list[bytes] | Responder) -> None:
        self.responses[verb.upper()] = response

    def verbs(self) -> list[str]:
        return [command.split(" ", 1)[0].upper() for command in self.commands]

    def handle(self, line: str) -> None:
        tag, command = line.split(" ", 1)
        self.tags.append(tag)
        self.commands.append(command)
        response = self.responses.get(command.split(" ", 1)[0].upper(), [b"{tag} BAD unknown command\r\n"])
        if callable(response):
            chunks = response(tag, command)
        else:
            chunks = [chunk.replace(b"{tag}", tag.encode()) for chunk in response]
        self.reader.feed(*chunks)

    def stream(self, settings: Settings) -> IMAPStream:
        return IMAPStream(self.reader, self.writer, read_timeout=settings.read_timeout, chunk_size=settings.read_chunk_size)


def fetch_response(literal: bytes, seq: int = 1, pieces: int = 1) -> Responder:
    """FETCH responder sending ``literal`` as a BODY[] literal, split into ``pieces`` chunks."""

    def respond(tag: str, command: str) -> list[bytes]:
        data = (
            f"* {seq} FETCH (BODY[] {{{len(literal)}}}\r\n".encode()
            + literal
            + f")\r\n{tag} OK FETCH completed\r\n".encode()
        )
        return split_into(data, pieces)

    return respond


@pytest.fixture
def settings():
    return Settings(
        greeting_timeout=0.5,
        command_timeout=0.5,
        literal_header_timeout=0.5,
        literal_timeout=0.5,
        drain_timeout=0.5,
        read_timeout=0.05,
        include_diagnostics=True,
        store_path=None,
    )


@pytest.fixture
def imap_server():
    server = FakeIMAPServer()

    async def fake_open_stream(credentials, settings):
        server.credentials = credentials
        return server.stream(settings)

    with patch("mcp_imap_body.emails.session.open_stream", new=fake_open_stream):
        yield server
