# telemetry.py
from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional

from langfuse import propagate_attributes

from observability.langfuse_client import langfuse

Json = Dict[str, Any]


def pseudonymize_phone(phone: Optional[str]) -> str:
    """Stable, non-reversible id for traces; raw numbers never leave the process."""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if not digits:
        return "unknown"
    return "ph_" + hashlib.sha256(digits.encode()).hexdigest()[:12]


def set_common_trace_attrs(
    *,
    phone: str,
    message_id: Optional[str] = None,
    route: Optional[str] = None,
    user_id: Optional[str] = None,
    extra_metadata: Optional[Json] = None,
):
    """
    Trace-level attributes for one inbound message:
      - user_id: registered user id, else the pseudonymized phone
      - session_id: pseudonymized phone (one conversation per number)
      - tags: the route taken (registration / contacts)
    """
    session = pseudonymize_phone(phone)
    meta: Json = {}
    if message_id:
        meta["message_id"] = message_id
    if extra_metadata:
        meta.update(extra_metadata)

    return propagate_attributes(
        user_id=user_id or session,
        session_id=session,
        tags=[route] if route else [],
        metadata=meta,
    )


def mark_error(exc: Exception, *, kind: str = "UnhandledError", span=None, extra: Optional[Json] = None) -> None:
    """
    Minimal error marking; no payload dumping. Add explicit `extra` if needed.
    """
    meta = {"status": "error", "error.kind": kind, "error.type": type(exc).__name__}
    if extra:
        meta["error.extra"] = extra

    if span is not None:
        try:
            span.update(metadata=meta)
        except Exception:
            pass

    try:
        langfuse.update_current_span(
            metadata=meta,
            status_message=str(exc),
            level="ERROR",
        )
    except Exception:
        # Never let observability crash business logic
        pass
