"""Plain text / HTML extraction from a raw RFC 5322 message.

This is deliberately not a full MIME parser. Parts are found with a single
boundary-splitting pass over the top-level body, one level deep: a part that
is itself ``multipart/*`` is kept as an opaque part and not descended into.
Charsets are not interpreted; decoded content is read as UTF-8 with
replacement characters for invalid sequences.

Raw bytes are mapped 1:1 onto text with latin-1 for all structural work, so
offsets and lengths are byte offsets and lengths.

Nothing in here raises on malformed input. Worst case the caller gets an
all-empty ``DecodedBody``.
"""

import base64
import binascii
import re

from mcp_imap_body.emails.models import DecodedBody, MessageDiagnostics, MimePart
from mcp_imap_body.log import logger

BLANK_LINE_RE = re.compile(r"\r?\n\r?\n")
BOUNDARY_RE = re.compile(r'boundary\s*=\s*"?([^";\r\n]+)"?', re.IGNORECASE)
BASE64_RE = re.compile(r"[A-Za-z0-9+/=]+")
QP_SOFT_BREAK_RE = re.compile(r"=\r?\n")
QP_ESCAPE_RE = re.compile(r"=([0-9A-Fa-f]{2})")

ATTACHMENT_DISPOSITION_RE = re.compile(r"Content-Disposition:\s*attachment", re.IGNORECASE)
NAME_PARAM_RE = re.compile(r"\bfilename\*?=|\bname\*?=", re.IGNORECASE)
IMAGE_TYPE_RE = re.compile(r"Content-Type:\s*image/", re.IGNORECASE)
CONTENT_ID_RE = re.compile(r"Content-ID:\s*<[^>]+>", re.IGNORECASE)

STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")
ENTITY_RE = re.compile(r"&(nbsp|amp|lt|gt|quot);")
WHITESPACE_RE = re.compile(r"\s+")

HTML_ENTITIES = {"nbsp": " ", "amp": "&", "lt": "<", "gt": ">", "quot": '"'}


def _as_utf8(text: str) -> str:
    """Reinterpret latin-1 mapped bytes as UTF-8."""
    return text.encode("latin-1", errors="replace").decode("utf-8", errors="replace")


def split_headers(text: str) -> tuple[str, str]:
    """Split at the first blank line. Without one, everything is headers."""
    match = BLANK_LINE_RE.search(text)
    if match is None:
        return text, ""
    return text[: match.start()], text[match.end() :]


def header_value(headers: str, name: str) -> str | None:
    """Value of the first ``name:`` header line, with folded continuation lines joined."""
    pattern = rf"(?:^|\r?\n){re.escape(name)}:[ \t]*([^\r\n]*(?:\r?\n[ \t][^\r\n]*)*)"
    match = re.search(pattern, headers, re.IGNORECASE)
    if match is None:
        return None
    return re.sub(r"\r?\n[ \t]+", " ", match.group(1)).strip()


def find_boundary(headers: str) -> str | None:
    match = BOUNDARY_RE.search(headers)
    return match.group(1).strip() if match else None


def has_attachments(text: str) -> bool:
    """Heuristic attachment check over the whole message, independent of part parsing."""
    if ATTACHMENT_DISPOSITION_RE.search(text) or NAME_PARAM_RE.search(text):
        return True
    # inline images referenced by cid:
    return bool(IMAGE_TYPE_RE.search(text) and CONTENT_ID_RE.search(text))


def parse_part(segment: str) -> MimePart:
    headers, content = split_headers(segment)
    content_type = (header_value(headers, "Content-Type") or "").lower().split(";")[0].strip()
    encoding = (header_value(headers, "Content-Transfer-Encoding") or "").lower().strip()
    return MimePart(content_type=content_type, transfer_encoding=encoding, headers=headers, content=content)


def split_parts(body: str, boundary: str) -> list[MimePart]:
    """Split a multipart body on its ``--boundary`` delimiter lines.

    The preamble, epilogue and closing ``--`` leftovers come out as empty or
    header-only segments and carry no content type.
    """
    delimiter = re.compile(rf"(?:^|\r?\n)--{re.escape(boundary)}(?:--)?[ \t]*(?:\r?\n|$)")
    parts = []
    for segment in delimiter.split(body):
        segment = segment.strip()
        if not segment or segment == "--":
            continue
        parts.append(parse_part(segment))
    return parts


def decode_quoted_printable(text: str) -> str:
    joined = QP_SOFT_BREAK_RE.sub("", text)
    unescaped = QP_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), joined)
    return _as_utf8(unescaped)


def decode_base64(text: str) -> str:
    """Decode base64 content, or return it unchanged when it does not look like base64."""
    cleaned = WHITESPACE_RE.sub("", text)
    if not BASE64_RE.fullmatch(cleaned) or len(cleaned) % 4 != 0:
        return _as_utf8(text)
    try:
        return base64.b64decode(cleaned, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return _as_utf8(text)


def decode_content(part: MimePart) -> str:
    if part.transfer_encoding == "base64":
        return decode_base64(part.content.strip()).strip()
    if part.transfer_encoding == "quoted-printable":
        return decode_quoted_printable(part.content).strip()
    return _as_utf8(part.content).strip()


def html_to_text(html: str) -> str:
    text = STYLE_RE.sub("", html)
    text = SCRIPT_RE.sub("", text)
    text = TAG_RE.sub(" ", text)
    text = ENTITY_RE.sub(lambda m: HTML_ENTITIES[m.group(1)], text)
    return WHITESPACE_RE.sub(" ", text).strip()


def extract_body(raw: bytes | str) -> DecodedBody:
    """Decode ``raw`` into its first text/plain part, first text/html part and an attachment flag.

    When there is HTML but no plain text part, the text is derived from the
    HTML. Pure function: the same input always gives the same output.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    message = raw.decode("latin-1")

    attachments = has_attachments(message)
    headers, body = split_headers(message)
    boundary = find_boundary(headers)

    text: str | None = None
    html: str | None = None
    if boundary:
        for part in split_parts(body, boundary):
            if part.content_type.startswith("multipart/"):
                logger.debug(f"Skipping nested {part.content_type} part")
                continue
            if text is None and "text/plain" in part.content_type:
                text = decode_content(part)
            elif html is None and "text/html" in part.content_type:
                html = decode_content(part)
            if text is not None and html is not None:
                break
    else:
        part = parse_part(message)
        if "text/html" in part.content_type:
            html = decode_content(part)
        else:
            text = decode_content(part)

    text = text or ""
    html = html or ""
    if not text and html:
        text = html_to_text(html)

    return DecodedBody(text=text, html=html, has_attachments=attachments)


def describe_message(raw: bytes, body: DecodedBody | None = None) -> MessageDiagnostics:
    """Top-level header summary of ``raw``, for troubleshooting empty bodies."""
    message = raw.decode("latin-1")
    match = BLANK_LINE_RE.search(message)
    header_end_idx = match.start() if match else -1
    headers = message if match is None else message[:header_end_idx]

    content_type = header_value(headers, "Content-Type")
    encoding = header_value(headers, "Content-Transfer-Encoding")
    return MessageDiagnostics(
        raw_len=len(raw),
        header_end_idx=header_end_idx,
        content_type=content_type.split(";")[0].strip() if content_type else None,
        transfer_encoding=encoding.split()[0] if encoding else None,
        boundary=find_boundary(headers),
        header_preview=headers[:800],
        text_len=len(body.text) if body else 0,
        html_len=len(body.html) if body else 0,
    )
