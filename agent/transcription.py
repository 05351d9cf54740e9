# agent/transcription.py
"""
Voice notes -> text. Download and transcription failures come back as None so the
caller can ask the user to type instead; nothing here raises.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from agent.llm_client import SpeechToTextClient
from observability.obs import span_step
from observability.telemetry import mark_error

logger = logging.getLogger(__name__)


class MediaSource(Protocol):
    def download_media(self, message_key: Dict[str, Any]) -> Optional[bytes]: ...


class AudioTranscriber:
    def __init__(self, media: Optional[MediaSource], stt: Optional[SpeechToTextClient]):
        self.media = media
        self.stt = stt

    def transcribe(self, message_key: Dict[str, Any]) -> Optional[str]:
        if self.media is None or self.stt is None:
            logger.warning("audio received but transcription is not configured")
            return None

        with span_step("transcribe_audio", kind="node", node="transcribe_audio") as s:
            try:
                audio = self.media.download_media(message_key)
                if not audio:
                    logger.warning("voice note %s could not be downloaded", message_key.get("id"))
                    return None
                text = self.stt.transcribe(audio)
            except Exception as e:
                logger.warning("voice note %s could not be transcribed: %s", message_key.get("id"), e)
                mark_error(e, kind="TranscriptionError", span=s)
                return None

            text = (text or "").strip()
            if not text:
                logger.info("voice note %s transcribed to nothing", message_key.get("id"))
                return None
            logger.info("voice note %s transcribed (%d chars)", message_key.get("id"), len(text))
            return text
