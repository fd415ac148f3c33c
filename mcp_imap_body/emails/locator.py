"""Stored message locator -> IMAP sequence number.

Locators were written by earlier versions of the mail sync in several ad hoc
shapes, so resolution is a compatibility shim rather than a schema:

1. ``"<anything>-<seq>-<timestamp>"``: sequence number embedded before a
   trailing timestamp.
2. ``"<email>|<folder>|<seq>"``: explicit sequence number as last segment.
3. anything else: the server's real ``Message-ID`` header, found with
   ``SEARCH HEADER Message-ID`` (bracketed form first, then bare).

The first structurally valid match wins. A numeric match is not checked
against the server.
"""

import re
from typing import TYPE_CHECKING

from mcp_imap_body.emails.models import LocatorStrategy, SequenceMatch
from mcp_imap_body.log import logger

if TYPE_CHECKING:
    from mcp_imap_body.emails.session import IMAPSession

DASH_SUFFIX_RE = re.compile(r"-([0-9]+)-([0-9]+)$")
DIGITS_RE = re.compile(r"[0-9]+")


def parse_sequence(locator: str) -> SequenceMatch | None:
    """Extract an embedded sequence number without talking to the server."""
    dash = DASH_SUFFIX_RE.search(locator)
    if dash:
        return SequenceMatch(seq=int(dash.group(1)), strategy=LocatorStrategy.DASH_SUFFIX)

    parts = locator.split("|")
    if len(parts) >= 3 and DIGITS_RE.fullmatch(parts[-1]):
        return SequenceMatch(seq=int(parts[-1]), strategy=LocatorStrategy.PIPE_SUFFIX)

    return None


def message_id_value(locator: str) -> str:
    """The Message-ID carried by ``locator``, without angle brackets.

    ``"<email>|<message-id>"`` yields the second segment; a locator without
    ``|`` is taken whole.
    """
    parts = locator.split("|")
    value = parts[1] if len(parts) >= 2 else locator
    return value.replace("<", "").replace(">", "").strip()


async def resolve_sequence(session: "IMAPSession", locator: str) -> SequenceMatch | None:
    """Resolve ``locator`` on a session with a selected mailbox.

    Issues at most two SEARCH commands, and none when the locator embeds a
    sequence number.
    """
    match = parse_sequence(locator)
    if match is not None:
        logger.info(f"Found seq {match.seq} from {match.strategy.value} pattern")
        return match

    value = message_id_value(locator)
    if not value:
        return None

    logger.info(f"Searching by Message-ID header: <{value}>")
    seq = await session.search_message_id(f"<{value}>")
    if seq is None:
        logger.info(f"Trying search without angle brackets: {value}")
        seq = await session.search_message_id(value)

    if seq is None:
        return None
    return SequenceMatch(seq=seq, strategy=LocatorStrategy.HEADER_SEARCH)
