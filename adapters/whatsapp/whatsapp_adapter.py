# adapters/whatsapp/whatsapp_adapter.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from models.input import InboundMessage


class MessagingClient(ABC):
    """Outbound side: fire-and-forget text to a phone."""

    @abstractmethod
    async def send_text(self, phone: str, message: str) -> bool:
        """
        Send a text message. Returns False when the provider refused or is not
        configured; never raises for delivery problems.
        """
        pass


class WhatsAppAdapter(MessagingClient):
    """Provider adapter: parses its webhooks and sends through its API."""

    @abstractmethod
    def parse_incoming(self, data: Dict[str, Any]) -> Optional[InboundMessage]:
        """
        Extract one inbound message from a webhook payload, or None when the event
        is not a user message we handle (own messages, other events, other media).
        """
        pass

    def download_media(self, message_key: Dict[str, Any]) -> Optional[bytes]:
        """Decrypted media of an inbound message. Blocking; None when unavailable."""
        return None
