import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp_imap_body.emails.models import StoredBody


class BodyStore(abc.ABC):
    @abc.abstractmethod
    async def update_body(self, record: "StoredBody") -> None:
        """
        Persist the decoded body of a message, replacing any earlier record for the same email + message_id
        """

    @abc.abstractmethod
    async def get_body(self, email: str, message_id: str) -> "StoredBody | None":
        """
        Get the stored body of a message, or None if it was never stored
        """
