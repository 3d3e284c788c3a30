"""
The narrow interface the pipeline needs from a desktop or web mail client.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from .models import AttachmentFile, Message


class MailClientError(Exception):
    """Raised when the mail client is unavailable or an operation on it fails."""
    pass


class MailClient(ABC):
    """Mail-client collaborator.

    Implementations absorb all client-specific fragility: a field that
    cannot be read comes back as its default instead of failing the call.
    """

    @abstractmethod
    async def fetch_active_message(self) -> Message:
        """Return the currently selected message.

        Raises:
            MailClientError: If nothing is selected or the client is unreachable
        """

    @abstractmethod
    async def fetch_message_by_id(self, message_id: str) -> Message:
        pass

    @abstractmethod
    async def extract_attachments(self, message_id: str, destination_dir: Path) -> List[AttachmentFile]:
        """Save every attachment of a message into `destination_dir`."""

    @abstractmethod
    async def create_reply(self, message_id: str, body_text: str, reply_all: bool = False) -> None:
        """Open a reply containing `body_text` for the user to review.

        `body_text` is plain text; HTML escaping and line-break conversion
        are the implementation's job.
        """
