from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MailboxCredentials(BaseModel):
    """IMAP server address and login for one mailbox"""

    host: str
    port: int = Field(default=993, ge=1, le=65535)
    use_tls: bool = True
    username: str
    password: str

    def masked(self) -> "MailboxCredentials":
        return self.model_copy(update={"password": "********"})


class LocatorStrategy(str, Enum):
    """How a stored message locator was turned into a sequence number"""

    DASH_SUFFIX = "dash_suffix"  # "<...>-<seq>-<timestamp>"
    PIPE_SUFFIX = "pipe_suffix"  # "<email>|<folder>|<seq>"
    HEADER_SEARCH = "header_search"  # SEARCH HEADER Message-ID


class SequenceMatch(BaseModel):
    """A resolved message sequence number"""

    seq: int
    strategy: LocatorStrategy


class CommandResponse(BaseModel):
    """Accumulated response of one tagged IMAP command"""

    tag: str
    status: str | None = None  # OK / NO / BAD, None when no completion was seen
    status_line: str | None = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "OK"


class RawFetchResult(BaseModel):
    """Raw message bytes of a BODY[] literal and where they came from"""

    seq: int
    strategy: LocatorStrategy
    raw: bytes


class MimePart(BaseModel):
    """One body part produced by a single boundary-splitting pass"""

    content_type: str = ""  # lowercased, parameters dropped
    transfer_encoding: str = ""  # lowercased
    headers: str = ""
    content: str = ""


class DecodedBody(BaseModel):
    """Plain text, HTML and attachment flag of a message"""

    text: str = ""
    html: str = ""
    has_attachments: bool = False

    @property
    def has_body(self) -> bool:
        return bool(self.text or self.html)


class MessageDiagnostics(BaseModel):
    """Summary of the top-level headers of a fetched message"""

    raw_len: int
    header_end_idx: int  # -1 when no blank line separates headers from body
    content_type: str | None = None
    transfer_encoding: str | None = None
    boundary: str | None = None
    header_preview: str = ""
    text_len: int = 0
    html_len: int = 0


class StoredBody(BaseModel):
    """Decoded body as persisted for a message, keyed by email + message_id"""

    email: str
    message_id: str
    body_text: str | None = None
    body_html: str | None = None
    has_attachments: bool = False

    @classmethod
    def from_decoded(cls, email: str, message_id: str, body: DecodedBody) -> "StoredBody":
        return cls(
            email=email,
            message_id=message_id,
            body_text=body.text or None,
            body_html=body.html or None,
            has_attachments=body.has_attachments,
        )


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FetchEmailBodyRequest(_WireModel):
    """Request to fetch and decode one stored message"""

    imap_host: str
    imap_port: int = Field(default=993, ge=1, le=65535)
    imap_secure: bool = True
    email: str
    email_password: str
    folder: str | None = None  # falls back to Settings.default_folder
    message_id: str = Field(min_length=1)

    def credentials(self) -> MailboxCredentials:
        return MailboxCredentials(
            host=self.imap_host,
            port=self.imap_port,
            use_tls=self.imap_secure,
            username=self.email,
            password=self.email_password,
        )


class FetchEmailBodySuccess(_WireModel):
    """Body fetched, decoded and handed to the store"""

    success: bool = True
    seq: int
    has_attachments: bool
    has_body: bool
    diagnostics: MessageDiagnostics | None = None


class FetchEmailBodyFailure(_WireModel):
    """Body could not be fetched"""

    success: bool = False
    error: str


class ConnectionTestRequest(_WireModel):
    """Credentials to check against a provider's IMAP server"""

    email: str = ""
    password: str = ""
    host: str = ""


class ConnectionTestResponse(_WireModel):
    """Outcome of a connect + login round trip"""

    success: bool
    is_active: bool = False
    error: str | None = None
    imap_host: str | None = None
    imap_port: int | None = None
