import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from voice_dispatch.config.schema import DispatchConfig
from voice_dispatch.core.errors import (
    ConfigurationError,
    DispatchCancelled,
    DispatchTimeout,
    ProviderError,
    TurnLimitExceeded,
)
from voice_dispatch.core.result import (
    DispatchMetadata,
    DispatchResult,
    DispatchTurn,
    ToolCallRequest,
    ToolResult,
)
from voice_dispatch.core.state import DispatchState, validate_transition
from voice_dispatch.services.chat import ChatResponse, ChatSession
from voice_dispatch.tools.base import ToolDefinition
from voice_dispatch.tools.registry import ToolRegistry, ToolSelector

logger = logging.getLogger(__name__)

ChatFactory = Callable[[list[dict[str, Any]]], ChatSession]

USER_MESSAGES = {
    "ProviderError": "Sorry, I couldn't process that command. Please try again.",
    "Timeout": "The assistant took too long to respond. Please try again.",
    "Cancelled": "The request was cancelled.",
    "TurnLimitExceeded": "Sorry, I couldn't finish that command. Please try a simpler request.",
    "ConfigurationError": "Voice commands are not available right now.",
    "InternalError": "An unexpected error occurred. Please try again.",
}


class _DispatchRun:
    """Mutable bookkeeping for one process() call."""

    def __init__(self) -> None:
        self.state = DispatchState.AWAITING_MODEL
        self.turns: list[DispatchTurn] = []
        self.api_seconds = 0.0
        self.started = time.monotonic()

    def transition(self, target: DispatchState) -> None:
        validate_transition(self.state, target)
        logger.debug(f"Dispatch state: {self.state.name} -> {target.name}")
        self.state = target

    def fail(self) -> None:
        if self.state not in (DispatchState.DONE, DispatchState.FAILED):
            self.transition(DispatchState.FAILED)

    def metadata(self) -> DispatchMetadata:
        return DispatchMetadata(
            turn_count=len(self.turns),
            tool_call_count=sum(len(t.tool_calls) for t in self.turns),
            api_duration_ms=self.api_seconds * 1000,
            total_duration_ms=(time.monotonic() - self.started) * 1000,
        )


class DispatchLoop:
    """
    Tool-calling loop between a chat session and a tool registry.

    Each process() call resolves the tools for the request, asks the model,
    executes the tool calls it returns in order and feeds the results back
    until the model answers without tool calls or max_turns is reached.
    """

    def __init__(
        self,
        config: DispatchConfig,
        registry: ToolRegistry,
        chat_factory: ChatFactory,
    ) -> None:
        if config.max_turns < 1:
            raise ConfigurationError(f"max_turns must be at least 1, got {config.max_turns}")
        if config.request_timeout_seconds is not None and config.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be positive")
        self._config = config
        self._registry = registry
        self._chat_factory = chat_factory

    async def process(
        self,
        prompt: str,
        audio_path: str | Path | None = None,
        context: Mapping[str, Any] | None = None,
        tool_selector: ToolSelector | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DispatchResult:
        """Run one dispatch. Always returns a DispatchResult; never raises for dispatch failures."""
        context = context if context is not None else {}
        run = _DispatchRun()

        try:
            message = await self._run(run, prompt, audio_path, context, tool_selector, cancel_event)
        except ProviderError as e:
            logger.error(f"Provider error after {len(run.turns)} turn(s): {e}")
            return self._failure(run, "ProviderError")
        except DispatchTimeout as e:
            logger.error(str(e))
            return self._failure(run, "Timeout")
        except DispatchCancelled:
            logger.info(f"Dispatch cancelled after {len(run.turns)} turn(s)")
            return self._failure(run, "Cancelled")
        except TurnLimitExceeded as e:
            logger.warning(str(e))
            return self._failure(run, "TurnLimitExceeded")
        except ConfigurationError as e:
            logger.error(f"Dispatch configuration error: {e}")
            return self._failure(run, "ConfigurationError")
        except Exception:
            logger.exception("Unexpected error during dispatch")
            return self._failure(run, "InternalError")

        run.transition(DispatchState.DONE)
        metadata = run.metadata()
        logger.info(
            f"Dispatch completed in {metadata.turn_count} turn(s), "
            f"{metadata.tool_call_count} tool call(s), {metadata.total_duration_ms:.0f}ms"
        )
        return DispatchResult.ok(message, metadata)

    async def _run(
        self,
        run: _DispatchRun,
        prompt: str,
        audio_path: str | Path | None,
        context: Mapping[str, Any],
        tool_selector: ToolSelector | None,
        cancel_event: asyncio.Event | None,
    ) -> str:
        tools = self._registry.resolve(context, tool_selector)
        if not tools:
            logger.warning("No tools available - the model can only answer in text")
        session = self._chat_factory(ToolRegistry.to_function_schemas(tools))

        response = await self._await_model(run, session.ask(prompt, audio_path), cancel_event)

        while True:
            turn = DispatchTurn(number=len(run.turns) + 1, response=response)
            run.turns.append(turn)
            run.transition(DispatchState.MODEL_RESPONDED)

            if not response.has_tool_calls:
                return response.text

            run.transition(DispatchState.EXECUTING_TOOLS)
            turn.tool_results = await self._execute_tool_calls(turn.tool_calls, tools, context)

            if len(run.turns) >= self._config.max_turns:
                raise TurnLimitExceeded(
                    f"Model still requesting tools after {self._config.max_turns} turn(s)"
                )

            run.transition(DispatchState.AWAITING_MODEL)
            response = await self._await_model(
                run, session.continue_with(turn.tool_results), cancel_event
            )

    async def _execute_tool_calls(
        self,
        tool_calls: Sequence[ToolCallRequest],
        tools: Sequence[ToolDefinition],
        context: Mapping[str, Any],
    ) -> list[ToolResult]:
        """Run tool calls sequentially in the order the model emitted them."""
        results: list[ToolResult] = []
        for request in tool_calls:
            tool = ToolRegistry.find(request.tool_name, tools)
            if tool is None:
                logger.warning(f"Model requested unknown tool '{request.tool_name}'")
                results.append(ToolResult(
                    call_id=request.call_id,
                    tool_name=request.tool_name,
                    content=f"Error: Tool '{request.tool_name}' not found",
                    is_error=True,
                ))
                continue

            if self._config.log_tool_calls:
                logger.info(f"Calling tool '{tool.name}' with args: {request.arguments!r}")
            result = await tool.call(request, context)
            if self._config.log_tool_calls:
                logger.info(f"Tool '{tool.name}' returned: {result.content}")
            results.append(result)
        return results

    async def _await_model(
        self,
        run: _DispatchRun,
        call: Awaitable[ChatResponse],
        cancel_event: asyncio.Event | None,
    ) -> ChatResponse:
        """
        Await one model call, bounded by the per-call timeout and the
        caller's cancel event. Pending work is cancelled on every exit path.
        """
        if cancel_event is not None and cancel_event.is_set():
            if inspect.iscoroutine(call):
                call.close()
            raise DispatchCancelled("Cancelled before the model call")

        model_task = asyncio.ensure_future(call)
        waiters: set[asyncio.Future[Any]] = {model_task}
        cancel_task: asyncio.Future[Any] | None = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        start = time.monotonic()
        try:
            done, _pending = await asyncio.wait(
                waiters,
                timeout=self._config.request_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            run.api_seconds += time.monotonic() - start
            abandoned = [waiter for waiter in waiters if not waiter.done()]
            for waiter in abandoned:
                waiter.cancel()
            if abandoned:
                await asyncio.wait(abandoned)

        if model_task in done:
            return model_task.result()
        if cancel_task is not None and cancel_task in done:
            raise DispatchCancelled("Cancelled while awaiting the model")
        raise DispatchTimeout(
            f"Model call exceeded {self._config.request_timeout_seconds}s timeout"
        )

    def _failure(self, run: _DispatchRun, error_kind: str) -> DispatchResult:
        run.fail()
        return DispatchResult.failure(error_kind, USER_MESSAGES[error_kind], run.metadata())
