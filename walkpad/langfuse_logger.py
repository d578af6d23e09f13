"""Langfuse tracing for display analysis calls.

Every helper accepts None for the client/trace so callers never branch on
whether tracing is configured, and tracing errors never reach the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from langfuse import Langfuse

logger = logging.getLogger(__name__)


def maybe_create_langfuse(
    public_key: Optional[str],
    secret_key: Optional[str],
    host: Optional[str],
) -> Optional[Langfuse]:
    """Return a Langfuse client when credentials are set, else None."""
    if not public_key or not secret_key:
        return None
    try:
        return Langfuse(
            public_key=public_key,
            secret_key=secret_key,
            host=host or "https://cloud.langfuse.com",
        )
    except Exception as exc:
        logger.warning("Langfuse disabled: %s", exc)
        return None


def start_trace(
    langfuse: Optional[Langfuse],
    name: str,
    user_id: str | None = None,
    metadata: dict | None = None,
    tags: list[str] | None = None,
) -> Any:
    if langfuse is None:
        return None
    try:
        return langfuse.trace(name=name, user_id=user_id, metadata=metadata or {}, tags=tags or [])
    except Exception as exc:
        logger.debug("Langfuse trace failed: %s", exc)
        return None


def log_generation(
    trace: Any,
    name: str,
    model: str,
    input_payload: dict,
    output_payload: dict,
    usage: dict | None = None,
    metadata: dict | None = None,
    level: str = "DEFAULT",
) -> None:
    if trace is None:
        return
    usage = usage or {}
    try:
        trace.generation(
            name=name,
            model=model,
            input=input_payload,
            output=output_payload,
            usage={
                "input": usage.get("input_tokens"),
                "output": usage.get("output_tokens"),
                "total": usage.get("total_tokens"),
                "unit": "TOKENS",
            },
            metadata=metadata or {},
            level=level,
        )
    except Exception as exc:
        logger.debug("Langfuse generation failed: %s", exc)


def flush(langfuse: Optional[Langfuse]) -> None:
    if langfuse is None:
        return
    try:
        langfuse.flush()
    except Exception as exc:
        logger.debug("Langfuse flush failed: %s", exc)
