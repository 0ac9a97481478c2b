import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from tarsier import instrumentation as inst
from tarsier.emitter import CanonicalEmitter
from tarsier.errors import TransportError
from tarsier.events import StreamEvent, Usage
from tarsier.framing import FrameReassembler
from tarsier.message import (
    Message,
    MessageRole,
    ToolCallRequestMessage,
    ToolResultMessage,
)
from tarsier.provider import ChatRequest, ModelProvider, supports_tools
from tarsier.streaming import (
    BackendError,
    ToolCall,
    ToolCallAccumulator,
    ToolCallFragment,
    interpret,
)
from tarsier.tools import ToolExecutor, ToolOutcome, ToolSchema, to_ollama_functions
from tarsier.transcript import TranscriptFinalizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

END_TURN = "end_turn"
ITERATION_LIMIT = "iteration_limit"
ERROR = "error"
CANCELLED = "cancelled"


class TurnRequest(BaseModel):
    """Input for one logical call: a new user message and its context.

    Args:
        conversation_id: Conversation the transcript is saved under.
        model: Ollama model name.
        message: The new user message.
        history: Prior messages, oldest first.
        system_prompt: Optional system instruction.
        tools: Tool schemas offered to the model. Only sent to models
            known to support tool calling.
        workspace_path: Passed through to the tool executor.
    """

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    model: str
    message: Message
    history: list[Message] = []
    system_prompt: str | None = None
    tools: list[ToolSchema] = []
    workspace_path: str | None = None


@dataclass
class LoopState:
    """Mutable state of one call. Never shared between calls."""

    messages: list[Message]
    remaining: int
    iterations: int = 0
    text: str = ""
    usage: Usage = field(default_factory=Usage)
    stop_reason: str | None = None
    error: str | None = None


@dataclass
class RunResult:
    """The result of a single Runner.run() invocation."""

    text: str
    usage: Usage
    stop_reason: str
    iterations: int
    error: str | None = None


class Runner:
    """Executes the tool-calling loop against a streaming backend.

    Each backend turn's stream is normalised into canonical events and
    yielded as it arrives. When the model asks for tools, they are run
    through *tool_executor* and their results fed back as the next turn,
    up to *max_iterations* backend calls.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.

    Args:
        provider: Backend that performs one streaming chat call.
        tool_executor: Runs a named tool; reports failure via ``is_error``.
        max_iterations: Maximum number of backend round-trips per call.
        finalizer: Persists the transcript when the call ends, if given.
    """

    def __init__(
        self,
        provider: ModelProvider,
        tool_executor: ToolExecutor,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        finalizer: TranscriptFinalizer | None = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.provider = provider
        self.tool_executor = tool_executor
        self.max_iterations = max_iterations
        self.finalizer = finalizer

    async def run(self, request: TurnRequest) -> RunResult:
        """Run the loop to completion, discarding the event stream."""
        state = self._initial_state(request)
        async with aclosing(self._loop(request, state)) as events:
            async for _ in events:
                pass
        return RunResult(
            text=state.text,
            usage=state.usage,
            stop_reason=state.stop_reason,
            iterations=state.iterations,
            error=state.error,
        )

    def iter(self, request: TurnRequest) -> AsyncIterator[StreamEvent]:
        """Run the loop, yielding canonical events as execution proceeds."""
        return self._loop(request, self._initial_state(request))

    def _initial_state(self, request: TurnRequest) -> LoopState:
        return LoopState(
            messages=[*request.history, request.message],
            remaining=self.max_iterations,
        )

    async def _loop(
        self, request: TurnRequest, state: LoopState,
    ) -> AsyncIterator[StreamEvent]:
        emitter = CanonicalEmitter(model=request.model)
        tools = None
        if request.tools and supports_tools(request.model):
            tools = to_ollama_functions(request.tools)
        elif request.tools:
            logger.info(f"Model {request.model} does not support tools, sending none")

        try:
            for event in emitter.start():
                yield event

            while state.remaining > 0:
                chat = ChatRequest(
                    model=request.model,
                    messages=list(state.messages),
                    system_prompt=request.system_prompt,
                    tools=tools,
                )
                state.iterations += 1
                state.remaining -= 1
                turn_start = len(emitter.text)
                acc = ToolCallAccumulator()

                try:
                    async with aclosing(
                        self._stream_turn(chat, acc, emitter, state)
                    ) as turn_events:
                        async for event in turn_events:
                            yield event
                except Exception as e:
                    if not isinstance(e, TransportError):
                        logger.exception("Backend call failed")
                    state.stop_reason = ERROR
                    state.error = str(e)
                    for event in emitter.fail(str(e)):
                        yield event
                    return

                calls = acc.drain()
                if not calls:
                    state.stop_reason = END_TURN
                    break

                state.messages.append(ToolCallRequestMessage(
                    role=MessageRole.ASSISTANT,
                    content=emitter.text[turn_start:],
                    tool_calls=calls,
                ))
                for call in calls:
                    outcome = await self._execute_one(call, request.workspace_path)
                    state.messages.append(ToolResultMessage(
                        role=MessageRole.TOOL,
                        content=outcome.content,
                        tool_name=call.name,
                        tool_call_id=call.id,
                        is_error=outcome.is_error,
                    ))
                    for event in emitter.tool_result(call, outcome):
                        yield event
            else:
                logger.warning(
                    f"Iteration limit of {self.max_iterations} reached "
                    f"for {request.conversation_id}"
                )
                state.stop_reason = ITERATION_LIMIT

            for event in emitter.finish(state.stop_reason):
                yield event
        finally:
            state.text = emitter.text
            state.usage = emitter.usage
            if state.stop_reason is None:
                state.stop_reason = CANCELLED
            if self.finalizer is not None:
                await self.finalizer.finalize(
                    request.conversation_id, state.text, state.usage, request.model,
                )

    async def _stream_turn(
        self,
        chat: ChatRequest,
        acc: ToolCallAccumulator,
        emitter: CanonicalEmitter,
        state: LoopState,
    ) -> AsyncIterator[StreamEvent]:
        reassembler = FrameReassembler()
        async with inst.chat_span(chat.model, state.iterations) as span:
            try:
                async with aclosing(self.provider.stream_chat(chat)) as chunks:
                    async for chunk in chunks:
                        for record in reassembler.feed(chunk):
                            for native in interpret(record):
                                if isinstance(native, BackendError):
                                    raise TransportError(native.message)
                                if isinstance(native, ToolCallFragment):
                                    acc.feed(native)
                                for event in emitter.emit(native):
                                    yield event
            except Exception as e:
                inst.record_error(span, e)
                raise
            finally:
                reassembler.close()
            inst.record_usage(span, emitter.usage, emitter.done_reason)

    async def _execute_one(self, call: ToolCall, workspace_path: str | None) -> ToolOutcome:
        async with inst.tool_span(call) as span:
            try:
                outcome = await self.tool_executor(call.name, call.arguments, workspace_path)
            except Exception as e:
                logger.error(f"Tool executor raised for {call.name}: {e}")
                outcome = ToolOutcome(content=f"Error calling {call.name}: {e}", is_error=True)
            inst.record_outcome(span, outcome)
            return outcome
