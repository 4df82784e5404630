"""Agent turn loop: model call, tool dispatch, feedback, repeat.

One ``AgentLoop`` owns one transcript and serializes its own runs. Each
iteration asks the provider for a response; tool calls in the response are
executed sequentially through the registry and their results appended as
``tool`` messages before the next iteration. The run ends when a response
carries no tool calls, when cancellation or a stop request is observed, or
when the iteration cap is reached.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass, field
import json
import logging
import threading
from typing import TYPE_CHECKING, Literal

from clawloop._cancel import wait_cancellable
from clawloop.errors import APIError, ConfigurationError, LoopBusyError
from clawloop.providers.models import ChatOptions, Message, Usage
from clawloop.recovery import handle_context_overflow, record_boundary
from clawloop.retry import classify_failure
from clawloop.tools.registry import ToolContext

if TYPE_CHECKING:
    from collections.abc import Iterator

    from clawloop.config import Config
    from clawloop.memory import Memory
    from clawloop.providers.base import Provider, StreamCallback
    from clawloop.providers.models import Response, ToolCall
    from clawloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

RunStatus = Literal["completed", "cancelled", "stopped", "max_iterations"]

MEMORY_SEPARATOR = "\n\n---\n\n"
#: Repeats of the previous first-call signature tolerated before correcting.
REPEAT_THRESHOLD = 2
LOOP_BREAKER_MESSAGE = (
    "You have issued the same tool call with the same arguments three times in "
    "a row. Stop repeating it. Use the results you already have, try a different "
    "approach, or give your final answer."
)
#: Result recorded for calls that never ran because the run was cancelled.
CANCELLED_TOOL_RESULT = "Error: cancelled"
DEFAULT_SYSTEM_PROMPT = (
    "You are clawloop, an autonomous agent. You complete tasks by calling the "
    "tools available to you and reading their results.\n\n"
    "Workspace: {workspace}\n\n"
    "Verify file contents instead of assuming them. When the task is done, "
    "reply with a short summary and no tool calls."
)


@dataclass
class LoopState:
    """Transient per-run state; reset whenever a run starts."""

    running: bool = False
    last_tool_signature: str | None = None
    repeat_count: int = 0

    def reset(self) -> None:
        self.last_tool_signature = None
        self.repeat_count = 0


@dataclass(frozen=True)
class RunResult:
    """How a run ended, with the last assistant text and token totals."""

    status: RunStatus
    text: str = ""
    iterations: int = 0
    usage: Usage = field(default_factory=Usage)


class _Interrupted(Exception):
    def __init__(self, status: RunStatus) -> None:
        super().__init__(status)
        self.status = status


def tool_signature(call: ToolCall) -> str:
    """Canonical name plus key-sorted JSON arguments."""
    return call.name + json.dumps(call.arguments, sort_keys=True)


class AgentLoop:
    """Drive a provider and a tool registry until the model stops calling tools.

    ``stop()`` requests a graceful stop that is observed at the top of each
    iteration and during backoff waits. Setting the ``cancel`` event passed
    to ``run`` additionally aborts an in-flight model call or shell command.
    Both end the run with a ``RunResult`` rather than an exception.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        config: Config,
        *,
        memory: Memory | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.config = config
        self.memory = memory
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT.format(
            workspace=config.workspace
        )
        self.state = LoopState()
        self._transcript: list[Message] = []
        self._guard = threading.Lock()
        self._stop = asyncio.Event()

    @property
    def transcript(self) -> list[Message]:
        """A copy of the conversation so far."""
        return list(self._transcript)

    def clear_history(self) -> None:
        self._transcript = []

    def stop(self) -> None:
        """Request a graceful stop of the current run (no-op when idle).

        Call from the event loop that runs the agent.
        """
        if self.state.running:
            logger.info("Stop requested")
            self._stop.set()

    async def run(
        self,
        prompt: str,
        *,
        cancel: asyncio.Event | None = None,
        on_event: StreamCallback | None = None,
    ) -> RunResult:
        """Start a fresh conversation from *prompt*.

        A pending resume replaces *prompt* with the stored recovery prompt.
        Memory context, when there is any, is prepended.
        """
        with self._running():
            prompt = self._consume_pending_resume(prompt)
            if self.memory is not None:
                context = self.memory.get_context(self.config.daily_notes_days)
                if context:
                    prompt = context + MEMORY_SEPARATOR + prompt
            self._transcript = [Message.system(self.system_prompt), Message.user(prompt)]
            logger.info("Run started (model=%s, provider=%s)", self.config.model, self.provider.name)
            return await self._iterate(cancel, on_event)

    async def run_continue(
        self,
        prompt: str,
        *,
        cancel: asyncio.Event | None = None,
        on_event: StreamCallback | None = None,
    ) -> RunResult:
        """Append *prompt* to the existing conversation and keep going."""
        with self._running():
            if not self._transcript:
                self._transcript.append(Message.system(self.system_prompt))
            self._transcript.append(Message.user(prompt))
            return await self._iterate(cancel, on_event)

    async def resume(
        self,
        *,
        cancel: asyncio.Event | None = None,
        on_event: StreamCallback | None = None,
    ) -> RunResult:
        """Start a new run from the recovery prompt a context overflow left."""
        if self.memory is None or not self.memory.has_pending_resume():
            raise ConfigurationError(
                "no pending session to resume",
                hint="A resume trigger is only written after a context overflow.",
            )
        prompt = self.memory.read_resume_prompt()
        if not prompt:
            raise ConfigurationError("resume trigger present but resume prompt is empty")
        logger.info("Resuming from saved recovery prompt")
        return await self.run(prompt, cancel=cancel, on_event=on_event)

    async def aclose(self) -> None:
        await self.provider.aclose()

    @contextmanager
    def _running(self) -> Iterator[None]:
        with self._guard:
            if self.state.running:
                raise LoopBusyError(
                    "agent loop is already running",
                    hint="Await the current run or use a separate AgentLoop.",
                )
            self.state.running = True
        self.state.reset()
        self._stop.clear()
        try:
            yield
        finally:
            with self._guard:
                self.state.running = False

    def _consume_pending_resume(self, prompt: str) -> str:
        if self.memory is None or not self.memory.has_pending_resume():
            return prompt
        logger.info("Found pending session to resume")
        resume_prompt = self.memory.read_resume_prompt()
        if not resume_prompt:
            return prompt
        self.memory.clear_resume_trigger()
        return resume_prompt

    def _interruption(self, cancel: asyncio.Event | None) -> RunStatus | None:
        if cancel is not None and cancel.is_set():
            return "cancelled"
        if self._stop.is_set():
            return "stopped"
        return None

    async def _iterate(
        self, cancel: asyncio.Event | None, on_event: StreamCallback | None
    ) -> RunResult:
        usage = Usage()
        last_text = ""
        max_iterations = self.config.max_tool_iterations

        for iteration in range(1, max_iterations + 1):
            status = self._interruption(cancel)
            if status is not None:
                logger.info("Run %s before iteration %d", status, iteration)
                return RunResult(status, last_text, iteration - 1, usage)

            try:
                response = await self._call_model(cancel, on_event)
                usage = usage + response.usage
                if response.text:
                    last_text = response.text

                if not response.tool_calls:
                    if response.text:
                        self._transcript.append(Message.assistant(response.text))
                    self._scan_boundary(response.text)
                    logger.info("Run completed after %d iteration(s)", iteration)
                    return RunResult("completed", last_text, iteration, usage)

                await self._dispatch_tools(response, cancel)
            except _Interrupted as e:
                return RunResult(e.status, last_text, iteration, usage)
            except asyncio.CancelledError:
                if cancel is not None and cancel.is_set():
                    logger.info("Run cancelled during iteration %d", iteration)
                    return RunResult("cancelled", last_text, iteration, usage)
                raise

            self._scan_boundary(response.text)

        logger.warning(
            "Reached max tool iterations (%d) without a final answer", max_iterations
        )
        return RunResult("max_iterations", last_text, max_iterations, usage)

    async def _call_model(
        self, cancel: asyncio.Event | None, on_event: StreamCallback | None
    ) -> Response:
        """Call the provider, retrying rate limits with linear backoff.

        A vendor Retry-After longer than the scheduled delay wins.
        """
        policy = self.config.retry
        options = ChatOptions(
            max_tokens=self.config.max_tokens, temperature=self.config.temperature
        )
        tools = self.registry.get_definitions()
        attempt = 0
        while True:
            attempt += 1
            try:
                if self.config.stream:
                    return await self.provider.chat_stream(
                        self._transcript,
                        tools,
                        self.config.model,
                        options,
                        on_event,
                        cancel=cancel,
                    )
                return await self.provider.chat(
                    self._transcript, tools, self.config.model, options, cancel=cancel
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                kind = classify_failure(exc, self.config.signatures)
                if kind == "context_overflow":
                    raise handle_context_overflow(
                        self.memory,
                        days=self.config.daily_notes_days,
                        provider=self.provider.name,
                    ) from exc
                if kind != "rate_limit" or attempt >= policy.max_attempts:
                    raise

                delay = policy.delay_for(attempt)
                if isinstance(exc, APIError) and exc.retry_after_s is not None:
                    delay = max(delay, exc.retry_after_s)
                logger.warning(
                    "Rate limited (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    policy.max_attempts,
                    delay,
                    exc,
                )
                fired = await wait_cancellable(delay, cancel, self._stop)
                if fired is not None:
                    raise _Interrupted(
                        "cancelled" if fired is cancel else "stopped"
                    ) from exc

    async def _dispatch_tools(
        self, response: Response, cancel: asyncio.Event | None
    ) -> None:
        calls = [
            call.with_name(self.registry.resolve_name(call.name))
            for call in response.tool_calls
        ]
        self._transcript.append(Message.assistant(response.text, calls))

        ctx = ToolContext(workspace=self.config.workspace, cancel=cancel)
        answered = 0
        try:
            for call in calls:
                logger.debug("Tool call: %s(%s)", call.name, call.arguments_json()[:200])
                result = await self.registry.execute(ctx, call.name, call.arguments)
                if result.error is not None:
                    logger.info("Tool %s failed: %s", call.name, result.error)
                self._transcript.append(Message.tool(call.id, result.to_message_content()))
                answered += 1
        except asyncio.CancelledError:
            # Every tool call in the transcript must be followed by its result.
            for call in calls[answered:]:
                self._transcript.append(Message.tool(call.id, CANCELLED_TOOL_RESULT))
            raise

        self._check_repetition(calls[0])

    def _check_repetition(self, first_call: ToolCall) -> None:
        signature = tool_signature(first_call)
        if signature == self.state.last_tool_signature:
            self.state.repeat_count += 1
        else:
            self.state.last_tool_signature = signature
            self.state.repeat_count = 0

        if self.state.repeat_count >= REPEAT_THRESHOLD:
            logger.warning("Repeated tool call %s detected; injecting correction", first_call.name)
            self._transcript.append(Message.user(LOOP_BREAKER_MESSAGE))
            self.state.reset()

    def _scan_boundary(self, text: str) -> None:
        if not text:
            return
        pattern = self.config.boundary_scan.match(text)
        if pattern is not None:
            record_boundary(self.memory, pattern)
