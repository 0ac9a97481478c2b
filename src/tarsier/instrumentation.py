"""Optional OpenTelemetry tracing.

Nothing is traced until :func:`instrument` is called, and only
``opentelemetry-api`` is needed for it. Without it every helper here is
a no-op that yields ``None``.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

PROVIDER_NAME = "ollama"

_tracer = None


def instrument(*, tracer_name: str = "tarsier") -> None:
    """Start emitting spans for backend round-trips and tool calls.

    Configure a TracerProvider first, then::

        import tarsier
        tarsier.instrument()

    Raises:
        ImportError: ``opentelemetry-api`` is missing. Install the
            ``tarsier[otel]`` extra.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "tracing needs opentelemetry-api: pip install tarsier[otel]"
        )
    from opentelemetry import trace

    tracer = trace.get_tracer(tracer_name)
    if isinstance(tracer, trace.NoOpTracer):
        logger.info(f"Tracer {tracer_name!r} has no TracerProvider, spans are dropped")
    else:
        logger.info(f"Tracing enabled with tracer {tracer_name!r}")
    _tracer = tracer


def uninstrument() -> None:
    global _tracer
    _tracer = None


def is_instrumented() -> bool:
    return _tracer is not None


@asynccontextmanager
async def chat_span(model: str, iteration: int):
    """Span covering one ``/api/chat`` round-trip.

    Started detached rather than as the current span: the loop hands
    events to its consumer while this span is open.
    """
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    span = _tracer.start_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": PROVIDER_NAME,
            "gen_ai.request.model": model,
            "tarsier.iteration": iteration,
        },
    )
    try:
        yield span
    finally:
        span.end()


@asynccontextmanager
async def tool_span(call):
    """Span covering the execution of one :class:`ToolCall`."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"execute_tool {call.name}",
        attributes={
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": call.name,
            "gen_ai.tool.call.id": call.id,
        },
    ) as span:
        yield span


def record_usage(span, usage, finish_reason: str | None = None) -> None:
    if span is None:
        return
    span.set_attribute("gen_ai.usage.input_tokens", usage.input_tokens)
    span.set_attribute("gen_ai.usage.output_tokens", usage.output_tokens)
    if finish_reason:
        span.set_attribute("gen_ai.response.finish_reasons", [finish_reason])


def record_outcome(span, outcome) -> None:
    """Flag a tool span whose outcome reported an error."""
    if span is None or not outcome.is_error:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, outcome.content[:200])
    span.set_attribute("error.type", "tool_error")


def record_error(span, exception: BaseException) -> None:
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.record_exception(exception)
    span.set_status(StatusCode.ERROR, str(exception))
    span.set_attribute("error.type", type(exception).__qualname__)
