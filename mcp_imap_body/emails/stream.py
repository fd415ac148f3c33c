"""Timeout-bounded reads over an IMAP byte stream.

Two read modes cover the whole protocol exchange: read until a structural
marker shows up in the accumulated bytes, and read until an exact number of
bytes is buffered. Every individual socket read is bounded by ``read_timeout``
and every call by an overall deadline, so a stalled server can only ever cost
the caller a bounded wait. A read that times out or hits EOF is "no more data",
never an exception.
"""

import asyncio
from collections.abc import Callable

from mcp_imap_body.log import logger

CRLF = b"\r\n"


class IMAPStream:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_timeout: float = 5.0,
        chunk_size: int = 16384,
    ):
        self.reader = reader
        self.writer = writer
        self.read_timeout = read_timeout
        self.chunk_size = chunk_size

    async def read_chunk(self, timeout: float | None = None) -> bytes | None:
        """Read whatever the server has sent, up to ``chunk_size`` bytes.

        Returns None on timeout or EOF.
        """
        if timeout is None or timeout > self.read_timeout:
            timeout = self.read_timeout
        try:
            chunk = await asyncio.wait_for(self.reader.read(self.chunk_size), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"IMAP read timed out after {timeout:.1f}s")
            return None
        return chunk or None

    async def read_until(
        self,
        predicate: Callable[[bytes], bool],
        timeout: float,
        buffer: bytes = b"",
    ) -> bytes:
        """Accumulate chunks onto ``buffer`` until ``predicate`` holds for the whole buffer.

        Stops early when a read yields no data or ``timeout`` seconds have
        elapsed; the caller inspects the returned bytes to find out which.
        """
        acc = bytearray(buffer)
        if predicate(bytes(acc)):
            return bytes(acc)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            chunk = await self.read_chunk(remaining)
            if chunk is None:
                break
            acc += chunk
            if predicate(bytes(acc)):
                break
        return bytes(acc)

    async def read_exactly(self, n: int, timeout: float, buffer: bytes = b"") -> tuple[bytes, bytes]:
        """Read until at least ``n`` bytes are buffered and split there.

        Returns ``(first_n, rest)``. Bytes past ``n`` that arrived in the same
        read belong to the next protocol line(s) and are handed back in
        ``rest``. On timeout the short read is returned with an empty rest.
        """
        acc = await self.read_until(lambda data: len(data) >= n, timeout, buffer)
        return acc[:n], acc[n:]

    async def write_line(self, line: bytes) -> None:
        self.writer.write(line + CRLF)
        await self.writer.drain()

    async def close(self) -> None:
        try:
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), self.read_timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Error while closing IMAP connection: {e!s}")
