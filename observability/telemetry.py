# telemetry.py
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence
from langfuse import propagate_attributes
from observability.langfuse_client import langfuse

from models.identity import Identity
Json = Dict[str, Any]


def trace_attrs(
    identity: Optional[Identity],
    *,
    session_id: Optional[str] = None,
    tags: Sequence[str] = (),
    extra_metadata: Optional[Json] = None,
):
    """
    Propagate who/where onto every span opened inside the block:
      - user_id from the identity (anonymous flows get no user)
      - session_id is the active conversation, when there is one
      - never serializes the identity itself (email stays out of traces)
    """
    meta: Json = {}
    if extra_metadata:
        meta.update(extra_metadata)

    return propagate_attributes(
        user_id=identity.user_id if identity else None,
        session_id=session_id,
        tags=[t for t in tags if t],
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
