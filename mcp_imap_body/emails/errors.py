class MailFetchError(Exception):
    """Base class for failures while fetching a message from the mail server"""

    def __init__(self, message: str, status_line: str | None = None):
        self.status_line = status_line
        if status_line:
            message = f"{message} ({status_line})"
        super().__init__(message)


class IMAPConnectionError(MailFetchError):
    """DNS, TCP, TLS or greeting failure"""


class IMAPAuthenticationError(MailFetchError):
    """LOGIN was not answered with OK"""


class IMAPMailboxError(MailFetchError):
    """SELECT was not answered with OK"""


class IMAPLiteralError(MailFetchError):
    """The FETCH response did not contain the expected BODY[] literal"""


class SessionStateError(MailFetchError):
    """A command was issued from a session state that does not permit it"""


class IMAPArgumentError(MailFetchError):
    """A command argument cannot be sent as an IMAP quoted string"""
