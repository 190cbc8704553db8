"""Event logging service.

Tool dispatches and run lifecycle events are emitted as structured JSON log
records on the ``copilot.events`` logger; fields travel in ``extra`` so the
JSON formatter renders them as top-level keys.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

events_logger = logging.getLogger("copilot.events")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_event(
    event_type: str,
    status: str = "success",
    user_id: Optional[str] = None,
    thread_id: Optional[str] = None,
    run_id: Optional[str] = None,
    latency_ms: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a run lifecycle event.

    Args:
        event_type: Event type (e.g., 'thread_created', 'run_completed', 'run_failed')
        status: 'success' | 'failure'
        user_id: Application user the event belongs to
        thread_id: Backend thread id
        run_id: Backend run id
        latency_ms: Latency in milliseconds
        payload: Additional fields
    """
    level = logging.INFO if status == "success" else logging.WARNING
    events_logger.log(
        level,
        event_type,
        extra={
            "event_type": event_type,
            "status": status,
            "user_id": user_id,
            "thread_id": thread_id,
            "run_id": run_id,
            "latency_ms": latency_ms,
            "timestamp": _timestamp(),
            **(payload or {}),
        },
    )


def log_tool_call(
    tool_name: str,
    success: bool,
    error: Optional[str] = None,
    user_id: Optional[str] = None,
    timestamp: Optional[str] = None,
    call_id: Optional[str] = None,
    thread_id: Optional[str] = None,
    latency_ms: Optional[int] = None,
) -> None:
    """Audit line for one tool dispatch: ``{tool_name, success, error, user_id, timestamp}``."""
    events_logger.info(
        "tool_call",
        extra={
            "event_type": "tool_call",
            "tool_name": tool_name,
            "success": success,
            "error": error,
            "user_id": user_id,
            "timestamp": timestamp or _timestamp(),
            "call_id": call_id,
            "thread_id": thread_id,
            "latency_ms": latency_ms,
        },
    )
