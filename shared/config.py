import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv(".venv/.env")


def require_env(var_name: str, default: Optional[str] = None) -> str:
    val = os.getenv(var_name)
    if not val:
        if default is None:
            raise ValueError(f"Missing required environment variable: {var_name}")
        val = default
    return val


def _env_float(var_name: str, default: float) -> float:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(var_name: str, default: int) -> int:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class MatchThresholds(BaseModel):
    # empirical values, keep them tunable
    direct: float = Field(0.85, ge=0.0, le=1.0)
    semantic: float = Field(0.7, ge=0.0, le=1.0)
    suggestion: float = Field(0.6, ge=0.0, le=1.0)
    suggestion_limit: int = Field(5, ge=0)


class RegistrationSettings(BaseModel):
    mode: Literal["conversational", "step"] = "conversational"
    flow_ttl_hours: int = 24
    name_fallback_attempts: int = 3     # N1
    email_fallback_extra: int = 2       # N2

    @property
    def phone_fallback_attempts(self) -> int:
        return self.name_fallback_attempts + 2

    @property
    def email_fallback_attempts(self) -> int:
        return self.name_fallback_attempts + self.email_fallback_extra + 2


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    transcription_model: str = "whisper-1"
    transcription_language: str = "pt"
    openai_timeout_seconds: float = 10.0
    openai_max_retries: int = 1

    default_country_code: str = "55"
    intent_min_length: int = 10

    thresholds: MatchThresholds = Field(default_factory=MatchThresholds)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)

    pending_update_ttl_seconds: int = 300
    graph_depth: int = 2
    graph_linked_fanout: int = 20

    evolution_api_url: Optional[str] = None
    evolution_api_key: Optional[str] = None
    evolution_instance: Optional[str] = None

    store_backend: Literal["firestore", "memory"] = "firestore"
    secrets_dir: str = ".secrets"
    expiry_sweep_interval_seconds: int = 3600

    @property
    def inference_configured(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            chat_model=require_env("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
            embedding_model=require_env("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            transcription_model=require_env("OPENAI_TRANSCRIPTION_MODEL", "whisper-1"),
            transcription_language=require_env("TRANSCRIPTION_LANGUAGE", "pt"),
            openai_timeout_seconds=_env_float("OPENAI_TIMEOUT_SECONDS", 10.0),
            openai_max_retries=_env_int("OPENAI_MAX_RETRIES", 1),
            default_country_code=require_env("DEFAULT_COUNTRY_CODE", "55"),
            intent_min_length=_env_int("INTENT_MIN_LENGTH", 10),
            thresholds=MatchThresholds(
                direct=_env_float("MATCH_DIRECT_THRESHOLD", 0.85),
                semantic=_env_float("MATCH_SEMANTIC_THRESHOLD", 0.7),
                suggestion=_env_float("MATCH_SUGGESTION_THRESHOLD", 0.6),
                suggestion_limit=_env_int("MATCH_SUGGESTION_LIMIT", 5),
            ),
            registration=RegistrationSettings(
                mode=require_env("REGISTRATION_MODE", "conversational"),
                flow_ttl_hours=_env_int("REGISTRATION_FLOW_TTL_HOURS", 24),
                name_fallback_attempts=_env_int("REGISTRATION_NAME_FALLBACK_ATTEMPTS", 3),
                email_fallback_extra=_env_int("REGISTRATION_EMAIL_FALLBACK_EXTRA", 2),
            ),
            pending_update_ttl_seconds=_env_int("PENDING_UPDATE_TTL_SECONDS", 300),
            graph_depth=_env_int("GRAPH_DEPTH", 2),
            graph_linked_fanout=_env_int("GRAPH_LINKED_FANOUT", 20),
            evolution_api_url=os.getenv("EVOLUTION_API_URL") or None,
            evolution_api_key=os.getenv("EVOLUTION_API_KEY") or None,
            evolution_instance=os.getenv("EVOLUTION_INSTANCE") or None,
            store_backend=require_env("STORE_BACKEND", "firestore"),
            secrets_dir=require_env("SECRETS_DIR", ".secrets"),
            expiry_sweep_interval_seconds=_env_int("EXPIRY_SWEEP_INTERVAL_SECONDS", 3600),
        )
