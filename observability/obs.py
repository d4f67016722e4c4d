# obs.py (Langfuse v3-compatible)
from __future__ import annotations

import time
import inspect
from functools import wraps
from contextlib import contextmanager
from typing import Any, Callable, ParamSpec, TypeVar, Optional, Mapping
from observability.langfuse_client import langfuse
from observability.telemetry import mark_error

SENSITIVE = {"invite_token", "password", "id_token", "email"}

def _dump(obj: Any) -> Any:
    try:
        md = getattr(obj, "model_dump", None)
        if callable(md): return md(mode="json")
        return obj
    except Exception:
        return obj

def _maybe_redact(v: Any, *, redact: bool) -> Any:
    if not redact or not isinstance(v, Mapping): return v
    try:
        return {k: ("***" if k in SENSITIVE else val) for k, val in v.items()}
    except Exception:
        return v

P = ParamSpec("P")
T = TypeVar("T")

def _safe_update_current_span(*, metadata: Optional[dict[str, Any]] = None,
                              status_message: Optional[str] = None,
                              level: Optional[str] = None) -> None:
    try:
        langfuse.update_current_span(metadata=metadata or {},
                                     status_message=status_message,
                                     level=level)
    except Exception:
        # Never let observability crash business logic
        pass

def _safe_span_update(span, *, metadata: dict[str, Any]) -> None:
    try:
        span.update(metadata=metadata)
    except Exception:
        pass

def _safe_io(**payload: Any) -> None:
    try:
        langfuse.update_current_span(**payload)
    except Exception:
        pass

def annotate(**metadata: Any) -> None:
    """Attach metadata to whatever span is current (no-op outside one)."""
    _safe_update_current_span(metadata=metadata)

def instrument_io(
    *,
    # span name (static) or builder(args, kwargs) -> str
    name: str | Callable[..., str],
    # metadata to set on span at start (static dict) or builder(args, kwargs) -> dict
    meta: Optional[dict] | Callable[..., Mapping[str, Any]] = None,
    # input extractor: (args, kwargs) -> dict | Any
    input_fn: Optional[Callable[..., Any]] = None,
    # output extractor: (result) -> dict | Any
    output_fn: Optional[Callable[[Any], Any]] = None,
    redact: bool = True,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorate an async function so each call becomes a span, with safe input/output logging.
    """
    def deco(fn: Callable[P, T]) -> Callable[P, T]:
        if not inspect.iscoroutinefunction(fn):
            raise TypeError("instrument_io only wraps coroutine functions")

        def _name(*args, **kwargs) -> str:
            return name(*args, **kwargs) if callable(name) else name

        def _meta(*args, **kwargs) -> Mapping[str, Any]:
            if callable(meta): return dict(meta(*args, **kwargs))
            return dict(meta or {})

        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:  # type: ignore[misc]
            n = _name(*args, **kwargs)
            t0 = time.perf_counter()
            with langfuse.start_as_current_span(name=n) as s:
                _safe_span_update(s, metadata=_meta(*args, **kwargs))
                try:
                    if input_fn is not None:
                        _safe_io(input=_maybe_redact(_dump(input_fn(*args, **kwargs)), redact=redact))
                    out = await fn(*args, **kwargs)
                    if output_fn is not None:
                        _safe_io(output=_maybe_redact(_dump(output_fn(out)), redact=redact))
                    _safe_update_current_span(metadata={"status": "ok", "duration.ms": int((time.perf_counter()-t0)*1000)})
                    return out
                except Exception as e:
                    _safe_update_current_span(
                        metadata={"status": "error", "error.kind": type(e).__name__, "duration.ms": int((time.perf_counter()-t0)*1000)},
                        status_message=str(e), level="ERROR"
                    )
                    mark_error(e, kind="InstrumentedIOError", span=s)
                    raise

        return wrapper  # type: ignore[return-value]
    return deco

def instrument(agent: str, operation: str, **defaults: Any) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Example:
      @instrument(agent="membership", operation="join_group")
      async def join_group(...): ...
    Async functions only: every public operation here is a coroutine.
    """
    def deco(fn: Callable[P, T]) -> Callable[P, T]:
        name = f"{agent}.{operation}"
        base_meta = {"agent": agent, "operation": operation, **defaults}

        if not inspect.iscoroutinefunction(fn):
            raise TypeError(f"{name}: instrument only wraps coroutine functions")

        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:  # type: ignore[misc]
            t0 = time.perf_counter()
            with langfuse.start_as_current_span(name=name) as span:
                _safe_span_update(span, metadata=base_meta)
                try:
                    out = await fn(*args, **kwargs)
                    _safe_update_current_span(metadata={"status": "ok", "duration.ms": int((time.perf_counter() - t0) * 1000)})
                    return out
                except Exception as e:
                    _safe_update_current_span(
                        metadata={"status": "error",
                                  "error.kind": type(e).__name__,
                                  "duration.ms": int((time.perf_counter() - t0) * 1000)},
                        status_message=str(e),
                        level="ERROR",
                    )
                    raise
        return wrapper  # type: ignore[return-value]
    return deco


@contextmanager
def span_attrs(name: str, as_type: str = "span", **attrs: Any):
    """
    Lightweight nested observation with fixed metadata.
    """
    t0 = time.perf_counter()

    with langfuse.start_as_current_observation(name=name, as_type=as_type) as s:
        if attrs:
            _safe_span_update(s, metadata=dict(attrs))

        try:
            yield s
            dur_ms = int((time.perf_counter() - t0) * 1000)
            _safe_span_update(s, metadata={"status": "ok", "duration.ms": dur_ms})
        except Exception as e:
            dur_ms = int((time.perf_counter() - t0) * 1000)
            _safe_span_update(s, metadata={"status": "error", "error.kind": type(e).__name__, "duration.ms": dur_ms})
            mark_error(e, kind=name, span=s)
            raise
