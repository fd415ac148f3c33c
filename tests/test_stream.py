import asyncio

import pytest
from conftest import FakeReader

from mcp_imap_body.emails.stream import IMAPStream


def make_stream(*chunks: bytes, eof: bool = False) -> IMAPStream:
    reader = FakeReader()
    reader.feed(*chunks)
    reader.eof = eof
    return IMAPStream(reader, writer=None, read_timeout=0.05, chunk_size=4)


class TestReadChunk:
    @pytest.mark.asyncio
    async def test_respects_chunk_size(self):
        stream = make_stream(b"abcdefgh")

        assert await stream.read_chunk() == b"abcd"
        assert await stream.read_chunk() == b"efgh"

    @pytest.mark.asyncio
    async def test_timeout_is_no_data(self):
        assert await make_stream().read_chunk() is None

    @pytest.mark.asyncio
    async def test_eof_is_no_data(self):
        assert await make_stream(eof=True).read_chunk() is None


class TestReadUntil:
    @pytest.mark.asyncio
    async def test_stops_at_marker(self):
        stream = make_stream(b"* OK", b" hi\r\n", b"next")

        data = await stream.read_until(lambda acc: b"\r\n" in acc, timeout=1)

        assert data == b"* OK hi\r\n"
        assert await stream.read_chunk() == b"next"

    @pytest.mark.asyncio
    async def test_buffer_already_satisfies_predicate(self):
        stream = make_stream(b"unread")

        assert await stream.read_until(lambda acc: acc.endswith(b"!"), timeout=1, buffer=b"done!") == b"done!"
        assert stream.reader.reads == 0

    @pytest.mark.asyncio
    async def test_returns_partial_data_when_server_stalls(self):
        stream = make_stream(b"* OK")

        assert await stream.read_until(lambda acc: b"\r\n" in acc, timeout=1) == b"* OK"

    @pytest.mark.asyncio
    async def test_overall_deadline(self):
        class DripReader(FakeReader):
            async def read(self, n):
                await asyncio.sleep(0.01)
                return b"."

        stream = IMAPStream(DripReader(), writer=None, read_timeout=0.05)

        data = await stream.read_until(lambda acc: False, timeout=0.1)

        assert 0 < len(data) < 50


class TestReadExactly:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunks", [[b"0123456789"], [b"01234", b"56789"], [bytes([c]) for c in b"0123456789"]])
    async def test_keeps_remainder(self, chunks):
        stream = make_stream(*chunks)

        data, rest = await stream.read_exactly(6, timeout=1, buffer=b"")

        assert data == b"012345"
        assert rest == b"6789"[: len(rest)]

    @pytest.mark.asyncio
    async def test_buffer_counts_towards_size(self):
        stream = make_stream(b"cd)\r\nA3 OK")

        data, rest = await stream.read_exactly(4, timeout=1, buffer=b"ab")

        assert data == b"abcd"
        assert rest == b")\r\nA3 OK"[: len(rest)]
        assert rest.startswith(b")")

    @pytest.mark.asyncio
    async def test_short_read_on_timeout(self):
        data, rest = await make_stream(b"abc").read_exactly(10, timeout=1)

        assert data == b"abc"
        assert rest == b""


class TestWrite:
    @pytest.mark.asyncio
    async def test_write_line_appends_crlf(self):
        class Writer:
            def __init__(self):
                self.data = b""

            def write(self, data):
                self.data += data

            async def drain(self):
                pass

        writer = Writer()
        await IMAPStream(FakeReader(), writer).write_line(b"A1 NOOP")

        assert writer.data == b"A1 NOOP\r\n"
