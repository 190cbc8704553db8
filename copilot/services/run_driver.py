"""Run driver: drives one assistant run to completion, executing tool calls on the way."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

from copilot.adapters.openai_assistant import AssistantBackend
from copilot.infra.config import config
from copilot.infra.error_handler import AssistantRunFailed, ResponseTimeout, RetryableError
from copilot.infra.metrics import (
    assistant_poll_retries_total,
    assistant_run_duration,
    assistant_runs_total,
    tool_call_duration,
    tool_calls_total,
)
from copilot.logging.event_logger import log_event, log_tool_call
from copilot.models.assistant import (
    TERMINAL_FAILURE_STATES,
    AssistantManagerContext,
    PendingToolCall,
    RunOutcome,
    RunSnapshot,
    RunStatus,
    ToolCallTrace,
    ToolOutput,
)
from copilot.models.tool import ToolContext, ToolResult
from copilot.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

NO_TEXT_CONTENT = "Assistant response received but no text content found."
NO_RESPONSE = "Assistant completed but no response found."

TERMINAL_STATUS_VALUES = frozenset(status.value for status in TERMINAL_FAILURE_STATES)


class RunDriver:
    """
    Polls a run until it reaches a terminal state.

    ``requires_action`` batches are dispatched in parallel through the tool
    registry and submitted as one batch. Retryable backend errors consume a
    poll attempt and are retried; non-retryable ones fail the run immediately.
    A run abandoned before it reached a terminal state is cancelled.
    """

    def __init__(
        self,
        backend: AssistantBackend,
        registry: ToolRegistry,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._backend = backend
        self._registry = registry
        self._poll_interval = config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self._max_attempts = max_attempts or config.MAX_POLL_ATTEMPTS
        self._sleep = sleep

    async def drive(
        self,
        thread_id: str,
        assistant_id: str,
        message: str,
        context: AssistantManagerContext,
        instructions: Optional[str] = None,
    ) -> RunOutcome:
        """
        Append ``message`` to the thread and run the assistant over it.

        Returns:
            RunOutcome with the final assistant text and the tool-call trace

        Raises:
            AssistantRunFailed: If the run failed, was cancelled or expired, or a
                non-retryable backend error occurred
            ResponseTimeout: If the run did not finish within the poll budget
        """
        start_time = time.time()
        try:
            await self._backend.add_user_message(thread_id, message)
            run_id = await self._backend.create_run(thread_id, assistant_id, instructions)
        except RetryableError as e:
            self._record_run("error", start_time)
            logger.error(f"Failed to start run on thread {thread_id}: {e.message}")
            raise AssistantRunFailed("Failed to get assistant response", run_status="error") from e

        log_event("run_created", user_id=context.user_id, thread_id=thread_id, run_id=run_id)

        try:
            traces = await self._poll(thread_id, run_id, context)
        except ResponseTimeout:
            self._record_run("timeout", start_time)
            log_event("run_timeout", status="failure", user_id=context.user_id, thread_id=thread_id, run_id=run_id)
            await self._cancel_quietly(thread_id, run_id)
            raise
        except AssistantRunFailed as e:
            self._record_run(e.run_status or "error", start_time)
            log_event(
                "run_failed",
                status="failure",
                user_id=context.user_id,
                thread_id=thread_id,
                run_id=run_id,
                payload={"run_status": e.run_status, "error": e.message},
            )
            # The thread accepts no new messages while this run is active
            if e.run_status not in TERMINAL_STATUS_VALUES:
                await self._cancel_quietly(thread_id, run_id)
            raise

        try:
            text = await self._final_text(thread_id)
        except AssistantRunFailed:
            self._record_run("error", start_time)
            raise

        self._record_run("completed", start_time)
        log_event(
            "run_completed",
            user_id=context.user_id,
            thread_id=thread_id,
            run_id=run_id,
            latency_ms=int((time.time() - start_time) * 1000),
            payload={"tool_calls": len(traces)},
        )
        return RunOutcome(thread_id=thread_id, run_id=run_id, response_text=text, tool_calls=traces)

    async def _poll(self, thread_id: str, run_id: str, context: AssistantManagerContext) -> List[ToolCallTrace]:
        """Poll until the run completes; returns the trace of the tool calls it made."""
        traces: List[ToolCallTrace] = []
        # Outputs already computed for a batch, keyed by its call ids
        pending_outputs: Dict[FrozenSet[str], List[ToolOutput]] = {}

        for attempt in range(1, self._max_attempts + 1):
            try:
                snapshot = await self._backend.retrieve_run(thread_id, run_id)
            except RetryableError as e:
                await self._backoff(e, f"poll {attempt}/{self._max_attempts} of run {run_id}")
                continue

            if snapshot.status == RunStatus.COMPLETED:
                return traces

            if snapshot.status == RunStatus.REQUIRES_ACTION:
                await self._handle_required_action(thread_id, snapshot, context, traces, pending_outputs)
                continue

            if snapshot.status in TERMINAL_FAILURE_STATES:
                detail = snapshot.last_error or "Unknown error"
                logger.warning(f"Run {run_id} ended with status {snapshot.status.value}: {detail}")
                raise AssistantRunFailed(
                    f"Assistant run {snapshot.status.value}: {detail}",
                    run_status=snapshot.status.value,
                )

            await self._sleep(self._poll_interval)

        logger.warning(f"Run {run_id} on thread {thread_id} did not finish after {self._max_attempts} polls")
        raise ResponseTimeout()

    async def _handle_required_action(
        self,
        thread_id: str,
        snapshot: RunSnapshot,
        context: AssistantManagerContext,
        traces: List[ToolCallTrace],
        pending_outputs: Dict[FrozenSet[str], List[ToolOutput]],
    ) -> None:
        batch_key = frozenset(call.call_id for call in snapshot.pending_calls)
        outputs = pending_outputs.get(batch_key)
        if outputs is None:
            outputs, batch_traces = await self.dispatch_batch(snapshot.pending_calls, context, thread_id)
            traces.extend(batch_traces)
            pending_outputs[batch_key] = outputs
        else:
            logger.info(f"Resubmitting cached outputs for {len(outputs)} tool calls on run {snapshot.run_id}")

        try:
            await self._backend.submit_tool_outputs(thread_id, snapshot.run_id, outputs)
        except RetryableError as e:
            await self._backoff(e, f"tool output submission for run {snapshot.run_id}")
            return
        pending_outputs.pop(batch_key, None)

    async def dispatch_batch(
        self,
        calls: List[PendingToolCall],
        context: AssistantManagerContext,
        thread_id: Optional[str] = None,
    ) -> Tuple[List[ToolOutput], List[ToolCallTrace]]:
        """
        Execute every pending call concurrently.

        Returns exactly one ToolOutput per call, in call order; a failing call
        yields a ``{success: false}`` output without affecting the others.
        """
        tool_context = context.tool_context()
        results = await asyncio.gather(
            *(self._dispatch_one(call, tool_context, context.user_id, thread_id) for call in calls),
            return_exceptions=True,
        )

        outputs: List[ToolOutput] = []
        traces: List[ToolCallTrace] = []
        for call, result in zip(calls, results):
            if isinstance(result, BaseException):
                logger.error(f"Tool call {call.call_id} ({call.tool_name}) raised: {result}", exc_info=result)
                failure = ToolResult.fail(f"Tool {call.tool_name} failed: {result}")
                outputs.append(ToolOutput(call_id=call.call_id, output=failure.serialize()))
                traces.append(ToolCallTrace(call_id=call.call_id, tool_name=call.tool_name, success=False, error=failure.error))
                continue
            output, trace = result
            outputs.append(output)
            traces.append(trace)
        return outputs, traces

    async def _dispatch_one(
        self,
        call: PendingToolCall,
        tool_context: ToolContext,
        user_id: str,
        thread_id: Optional[str],
    ) -> Tuple[ToolOutput, ToolCallTrace]:
        start_time = time.time()
        result = await self._registry.dispatch(call.tool_name, call.raw_arguments, tool_context)
        elapsed = time.time() - start_time
        duration_ms = int(elapsed * 1000)

        tool_calls_total.labels(tool_name=call.tool_name, status="success" if result.success else "failure").inc()
        tool_call_duration.labels(tool_name=call.tool_name).observe(elapsed)
        log_tool_call(
            tool_name=call.tool_name,
            success=result.success,
            error=result.error,
            user_id=user_id,
            call_id=call.call_id,
            thread_id=thread_id,
            latency_ms=duration_ms,
        )

        output = ToolOutput(call_id=call.call_id, output=result.serialize())
        trace = ToolCallTrace(
            call_id=call.call_id,
            tool_name=call.tool_name,
            success=result.success,
            error=result.error,
            duration_ms=duration_ms,
        )
        return output, trace

    async def _final_text(self, thread_id: str) -> str:
        try:
            text = await self._backend.latest_assistant_text(thread_id)
        except RetryableError as e:
            logger.error(f"Failed to read final message on thread {thread_id}: {e.message}")
            raise AssistantRunFailed("Failed to get assistant response", run_status="error") from e
        if text is None:
            return NO_RESPONSE
        return text or NO_TEXT_CONTENT

    async def _backoff(self, error: RetryableError, what: str) -> None:
        if not error.retryable:
            logger.error(f"Non-retryable backend error during {what}: {error.message}")
            raise AssistantRunFailed(f"Assistant run failed: {error.message}", run_status="error") from error
        assistant_poll_retries_total.labels(category=error.category.value).inc()
        logger.warning(f"Retryable backend error during {what}: {error.message}")
        delay = self._poll_interval
        if error.retry_after:
            delay = max(delay, error.retry_after)
        await self._sleep(delay)

    async def _cancel_quietly(self, thread_id: str, run_id: str) -> None:
        try:
            await self._backend.cancel_run(thread_id, run_id)
        except Exception as e:
            logger.warning(f"Failed to cancel run {run_id} on thread {thread_id}: {e}")

    @staticmethod
    def _record_run(status: str, start_time: float) -> None:
        assistant_runs_total.labels(status=status).inc()
        assistant_run_duration.observe(time.time() - start_time)
