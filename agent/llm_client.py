# agent/llm_client.py
"""
Inference collaborators. Services receive these by injection; a client is built from
the current Settings and replaced by rebuilding the owning service.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Protocol, Sequence

from openai import OpenAI

from observability.obs import safe_update_current_span_io, span_step
from shared.config import Settings

logger = logging.getLogger(__name__)


class InferenceNotConfigured(RuntimeError):
    """No API key: inference and embeddings are unavailable."""



class TextInferenceClient(Protocol):
    def classify(self, prompt: str, text: str, *, temperature: float = 0.1, max_tokens: int = 20) -> str: ...

    def complete(
        self,
        prompt: str,
        text: str,
        *,
        history: Sequence[Dict[str, str]] = (),
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str: ...


class EmbeddingClient(Protocol):
    def embed(self, text: str) -> List[float]: ...


class SpeechToTextClient(Protocol):
    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg") -> str: ...


class OpenAITextInference:
    def __init__(self, client: OpenAI, model: str = "gpt-4o-mini"):
        self.client = client
        self.model = model

    def _chat(self, messages, *, temperature: float, max_tokens: Optional[int], json_mode: bool, node: str) -> str:
        with span_step("llm_call", kind="llm", as_type="generation", model=self.model, node=node):
            safe_update_current_span_io(input={"messages": messages}, redact=True)
            kwargs = {
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
            }
            if max_tokens is not None:
                kwargs["max_tokens"] = max_tokens
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}

            start = time.time()
            resp = self.client.chat.completions.create(**kwargs)
            logger.debug("%s LLM took %.2fs", node, time.time() - start)

            content = (resp.choices[0].message.content or "").strip()
            safe_update_current_span_io(output={"content": content}, redact=False)
            return content

    def classify(self, prompt: str, text: str, *, temperature: float = 0.1, max_tokens: int = 20) -> str:
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": text},
        ]
        return self._chat(messages, temperature=temperature, max_tokens=max_tokens, json_mode=False, node="classify")

    def complete(
        self,
        prompt: str,
        text: str,
        *,
        history: Sequence[Dict[str, str]] = (),
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        messages = [{"role": "system", "content": prompt}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in history)
        messages.append({"role": "user", "content": text})
        return self._chat(messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode, node="complete")


class OpenAIEmbeddings:
    def __init__(self, client: OpenAI, model: str = "text-embedding-3-small"):
        self.client = client
        self.model = model

    def embed(self, text: str) -> List[float]:
        with span_step("embedding_call", kind="embedding", as_type="embedding", model=self.model):
            resp = self.client.embeddings.create(model=self.model, input=text)
            return list(resp.data[0].embedding)


class OpenAISpeechToText:
    """Whisper transcription of WhatsApp voice notes (ogg/opus)."""

    def __init__(self, client: OpenAI, model: str = "whisper-1", language: str = "pt"):
        self.client = client
        self.model = model
        self.language = language

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg") -> str:
        with span_step("transcription_call", kind="transcription", as_type="generation", model=self.model):
            start = time.time()
            text = self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio),
                language=self.language,
                response_format="text",
            )
            logger.debug("transcription of %d bytes took %.2fs", len(audio), time.time() - start)
            # response_format="text" returns a plain string
            text = (text if isinstance(text, str) else getattr(text, "text", "")).strip()
            safe_update_current_span_io(output={"chars": len(text)})
            return text


def _openai(settings: Settings) -> OpenAI:
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout_seconds,
        max_retries=settings.openai_max_retries,
    )


def build_inference_client(settings: Settings) -> Optional[OpenAITextInference]:
    if not settings.inference_configured:
        logger.warning("OPENAI_API_KEY not set; inference disabled")
        return None
    return OpenAITextInference(_openai(settings), model=settings.chat_model)


def build_embedding_client(settings: Settings) -> Optional[OpenAIEmbeddings]:
    if not settings.inference_configured:
        return None
    return OpenAIEmbeddings(_openai(settings), model=settings.embedding_model)


def build_speech_client(settings: Settings) -> Optional[OpenAISpeechToText]:
    if not settings.inference_configured:
        return None
    return OpenAISpeechToText(_openai(settings), model=settings.transcription_model, language=settings.transcription_language)
