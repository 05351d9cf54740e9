# adapters/whatsapp/evolution_adapter.py
import base64
import logging
import re
from typing import Any, Dict, Optional

import httpx

from adapters.whatsapp.whatsapp_adapter import WhatsAppAdapter
from models.input import InboundMessage
from shared import phone as phone_util
from shared.config import Settings

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "messages.upsert"

# getBase64FromMediaMessage may answer with a data URL
_DATA_URL_PREFIX = re.compile(r"^data:[^;,]+;base64,")


def normalize_event(raw: Optional[str]) -> str:
    # Evolution sends both MESSAGES_UPSERT and messages.upsert depending on version
    return (raw or "").lower().replace("_", ".")


def _jid_user(jid: Optional[str]) -> str:
    return (jid or "").split("@")[0]


def sender_phone(key: Dict[str, Any]) -> str:
    """senderPn (business accounts) > participant (groups) > remoteJid (private chats)."""
    if key.get("senderPn"):
        return _jid_user(key["senderPn"])
    if key.get("participant"):
        return _jid_user(key["participant"])
    return _jid_user(key.get("remoteJid"))


def message_text(message: Optional[Dict[str, Any]]) -> Optional[str]:
    """conversation > extendedTextMessage.text > imageMessage.caption."""
    m = message or {}
    text = (
        m.get("conversation")
        or (m.get("extendedTextMessage") or {}).get("text")
        or (m.get("imageMessage") or {}).get("caption")
    )
    return text.strip() if isinstance(text, str) and text.strip() else None


class EvolutionAdapter(WhatsAppAdapter):
    def __init__(
        self,
        api_url: Optional[str],
        api_key: Optional[str],
        instance: Optional[str],
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = (api_url or "").rstrip("/")
        self.api_key = api_key
        self.instance = instance
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "EvolutionAdapter":
        return cls(settings.evolution_api_url, settings.evolution_api_key, settings.evolution_instance)

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.instance)

    def parse_incoming(self, data: Dict[str, Any]) -> Optional[InboundMessage]:
        event = normalize_event((data or {}).get("event"))
        if event != MESSAGE_EVENT:
            logger.info("webhook event ignored: %s", event or "<none>")
            return None

        payload = data.get("data") or {}
        key = payload.get("key") or {}
        if not key:
            logger.warning("webhook payload without data.key")
            return None
        if key.get("fromMe"):
            return None

        phone = sender_phone(key)
        message = payload.get("message") or {}
        text = message_text(message)
        audio_key = key if not text and message.get("audioMessage") else None
        if not phone or not (text or audio_key):
            logger.info("webhook message %s has no sender, text or audio; ignored", key.get("id"))
            return None

        return InboundMessage(
            message_id=key.get("id"),
            phone=phone,
            text=text or "",
            audio_key=audio_key,
            push_name=payload.get("pushName") or None,
        )

    async def send_text(self, phone: str, message: str) -> bool:
        if not self.configured:
            logger.warning("Evolution API is not configured; message not sent")
            return False

        number = phone_util.normalize(phone) or phone_util.digits_only(phone)
        url = f"{self.api_url}/message/sendText/{self.instance}"
        headers = {"Content-Type": "application/json", "apikey": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json={"number": number, "text": message}, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Failed to send message: %s", e)
            return False

        if response.is_success:
            return True
        logger.error("Failed to send message: %s - %s", response.status_code, response.text[:300])
        return False

    def download_media(self, message_key: Dict[str, Any]) -> Optional[bytes]:
        """Voice notes arrive encrypted; Evolution decrypts them and answers in base64."""
        if not self.configured:
            logger.warning("Evolution API is not configured; media not downloaded")
            return None

        url = f"{self.api_url}/chat/getBase64FromMediaMessage/{self.instance}"
        headers = {"Content-Type": "application/json", "apikey": self.api_key}
        body = {"message": {"key": message_key}, "convertToMp4": False}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Failed to download media: %s", e)
            return None

        if not response.is_success:
            logger.error("Failed to download media: %s - %s", response.status_code, response.text[:300])
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Media download answered with a non-JSON body")
            return None
        encoded = data.get("base64") or (data.get("data") or {}).get("base64") or (data.get("mediaMessage") or {}).get("base64")
        if not encoded:
            logger.error("Media download response has no base64 content; keys: %s", ", ".join(data))
            return None
        try:
            return base64.b64decode(_DATA_URL_PREFIX.sub("", encoded))
        except ValueError:
            logger.error("Media download returned invalid base64")
            return None
