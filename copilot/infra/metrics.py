"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Tool metrics
tool_calls_total = Counter(
    "copilot_tool_calls_total",
    "Total tool calls dispatched on behalf of the assistant",
    ["tool_name", "status"],
)

tool_call_duration = Histogram(
    "copilot_tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name"],
)

# Assistant run metrics
assistant_runs_total = Counter(
    "copilot_assistant_runs_total",
    "Total assistant runs by outcome",
    ["status"],  # completed | failed | cancelled | expired | timeout | error
)

assistant_run_duration = Histogram(
    "copilot_assistant_run_duration_seconds",
    "Assistant run duration in seconds (message append to terminal state)",
)

assistant_poll_retries_total = Counter(
    "copilot_assistant_poll_retries_total",
    "Run polls that failed with a retryable backend error",
    ["category"],
)

# Thread metrics
threads_created_total = Counter(
    "copilot_threads_created_total",
    "Conversation threads created on the agent backend",
    ["reason"],  # new | recovered
)


def get_metrics_response() -> Response:
    """Render all registered metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
