# obs.py (Langfuse v3-compatible)
from __future__ import annotations

import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Mapping, Optional

from observability.langfuse_client import langfuse
from observability.telemetry import mark_error

# Replaced by "***" whenever a span payload is written with redact=True.
SENSITIVE_FIELDS = frozenset({
    "text", "message", "messages", "content", "history",
    "phone", "email", "password", "temporary_password", "context", "notes",
})


def _dump(obj: Any) -> Any:
    md = getattr(obj, "model_dump", None)
    if callable(md):
        try:
            return md(mode="json", exclude_none=True)
        except Exception:
            return repr(obj)
    return obj


def _redact(val: Any) -> Any:
    if isinstance(val, Mapping):
        return {k: ("***" if k in SENSITIVE_FIELDS else _redact(v)) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [_redact(v) for v in val]
    return val


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _update(target=None, **fields: Any) -> None:
    """Update the given observation, or the current span. Observability never breaks the caller."""
    try:
        if target is not None:
            target.update(**fields)
        else:
            langfuse.update_current_span(**fields)
    except Exception:
        pass


def safe_update_current_span_io(*, input: Optional[Any] = None,
                                output: Optional[Any] = None,
                                redact: bool = False) -> None:
    payload = {}
    for key, value in (("input", input), ("output", output)):
        if value is None:
            continue
        value = _dump(value)
        payload[key] = _redact(value) if redact else value
    if payload:
        _update(**payload)


@contextmanager
def span_step(name: str, *, kind: str, as_type: str = "span", model: Optional[str] = None, **attrs: Any):
    """
    Nested observation for one pipeline step. `kind` labels errors raised inside it;
    LLM calls pass as_type="generation" and the model name.
    """
    t0 = time.perf_counter()
    with langfuse.start_as_current_observation(name=name, as_type=as_type, model=model) as s:
        if attrs:
            _update(s, metadata=dict(attrs))
        try:
            yield s
        except Exception as e:
            _update(s, metadata={"status": "error", "error.kind": type(e).__name__,
                                 "duration.ms": _elapsed_ms(t0)},
                    status_message=str(e), level="ERROR")
            mark_error(e, kind=kind, span=s)
            raise
        _update(s, metadata={"status": "ok", "duration.ms": _elapsed_ms(t0)})


def instrument_io(
    *,
    name: str,
    meta: Optional[dict] = None,
    input_fn: Optional[Callable[..., Any]] = None,
    output_fn: Optional[Callable[[Any], Any]] = None,
    redact: bool = True,
):
    """
    Wrap a blocking entry point in a span; input_fn receives the call's arguments,
    output_fn its result.
    """
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            t0 = time.perf_counter()
            with langfuse.start_as_current_span(name=name) as s:
                _update(s, metadata=dict(meta or {}))
                if input_fn is not None:
                    safe_update_current_span_io(input=input_fn(*args, **kwargs), redact=redact)
                try:
                    out = fn(*args, **kwargs)
                except Exception as e:
                    _update(metadata={"status": "error", "error.kind": type(e).__name__,
                                      "duration.ms": _elapsed_ms(t0)},
                            status_message=str(e), level="ERROR")
                    mark_error(e, kind="InstrumentedIOError", span=s)
                    raise
                if output_fn is not None:
                    safe_update_current_span_io(output=output_fn(out), redact=redact)
                _update(metadata={"status": "ok", "duration.ms": _elapsed_ms(t0)})
                return out
        return wrapper
    return deco
