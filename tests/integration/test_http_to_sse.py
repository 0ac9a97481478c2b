"""End-to-end: Ollama HTTP stream through the loop and out as SSE."""

import json

import httpx
import pytest

from tarsier.provider import OllamaProvider
from tarsier.runner import Runner
from tarsier.sse import sse_generator
from tarsier.tools import ToolRegistry, tool
from tarsier.transcript import TranscriptFinalizer
from tests.conftest import (
    MemoryStore,
    done_record,
    make_request,
    ndjson,
    text_record,
    tool_record,
)


@tool
def add(a: int, b: int):
    """Add two integers."""
    return a + b


def ollama_server(bodies: list):
    """MockTransport handler replaying one response per /api/chat call."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        body = bodies.pop(0)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, content=body)

    return handler, requests


def provider_for(handler) -> OllamaProvider:
    client = httpx.AsyncClient(
        base_url="http://ollama.test", transport=httpx.MockTransport(handler),
    )
    return OllamaProvider(base_url="http://ollama.test", client=client)


def parse_sse(frames: list[str]) -> list[dict]:
    payloads = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        payloads.append(json.loads(frame[len("data: "):]))
    return payloads


@pytest.mark.asyncio
async def test_text_reply_as_sse():
    handler, requests = ollama_server([
        ndjson(text_record("Hel"), text_record("lo"), done_record(5, 2)),
    ])
    store = MemoryStore()
    registry = ToolRegistry([add])
    runner = Runner(
        provider=provider_for(handler),
        tool_executor=registry,
        finalizer=TranscriptFinalizer(store),
    )
    request = make_request(model="llama3.1", tools=registry.schemas())

    frames = [f async for f in sse_generator(runner.iter(request))]
    payloads = parse_sse(frames)

    assert payloads[0]["type"] == "message_start"
    assert payloads[0]["message"]["model"] == "llama3.1"
    assert payloads[1] == {
        "type": "content_block_start",
        "index": 0,
        "content_block": {"type": "text", "text": ""},
    }
    assert [p["delta"]["text"] for p in payloads if p["type"] == "content_block_delta"] == [
        "Hel", "lo",
    ]
    assert payloads[-2] == {
        "type": "message_delta",
        "delta": {"stop_reason": "end_turn"},
        "usage": {"input_tokens": 5, "output_tokens": 2},
    }
    assert payloads[-1] == {"type": "message_stop"}

    assert requests[0]["stream"] is True
    assert requests[0]["tools"][0]["function"]["name"] == "add"
    assert store.records[0].token_count == 7


@pytest.mark.asyncio
async def test_registry_tool_round_trip_over_http():
    handler, requests = ollama_server([
        ndjson(tool_record("add", {"a": 2, "b": 3}), done_record(10, 4)),
        ndjson(text_record("2 + 3 = 5"), done_record(20, 6)),
    ])
    registry = ToolRegistry([add])
    runner = Runner(provider=provider_for(handler), tool_executor=registry)
    request = make_request(model="llama3.1", tools=registry.schemas())

    payloads = [p.to_wire() async for p in runner.iter(request)]

    tool_results = [p for p in payloads if p["type"] == "tool_result"]
    assert len(tool_results) == 1
    assert tool_results[0]["tool_name"] == "add"
    assert tool_results[0]["content"] == "5"
    assert tool_results[0]["is_error"] is False

    follow_up = requests[1]["messages"]
    assert follow_up[-2]["role"] == "assistant"
    assert follow_up[-2]["tool_calls"][0]["function"] == {
        "name": "add", "arguments": {"a": 2, "b": 3},
    }
    assert follow_up[-1] == {"role": "tool", "content": "5", "tool_name": "add"}

    # usage reflects the most recent completion
    assert payloads[-2]["usage"] == {"input_tokens": 20, "output_tokens": 6}


@pytest.mark.asyncio
async def test_http_error_becomes_error_event():
    handler, _ = ollama_server([
        httpx.Response(404, text='{"error":"model \\"nope\\" not found"}'),
    ])
    store = MemoryStore()
    runner = Runner(
        provider=provider_for(handler),
        tool_executor=ToolRegistry([add]),
        finalizer=TranscriptFinalizer(store),
    )

    payloads = [e.to_wire() async for e in runner.iter(make_request(model="nope"))]

    assert [p["type"] for p in payloads] == [
        "message_start", "content_block_start", "error",
    ]
    assert payloads[-1]["error"]["type"] == "ollama_error"
    assert payloads[-1]["error"]["message"].startswith("Ollama error 404:")
    assert len(store.records) == 1


@pytest.mark.asyncio
async def test_sse_disconnect_persists_partial_text():
    handler, _ = ollama_server([
        ndjson(text_record("partial "), text_record("rest"), done_record(1, 1)),
    ])
    store = MemoryStore()
    runner = Runner(
        provider=provider_for(handler),
        tool_executor=ToolRegistry([add]),
        finalizer=TranscriptFinalizer(store),
    )

    frames = sse_generator(runner.iter(make_request(model="llama3.1")))
    async for frame in frames:
        if "partial" in frame:
            break
    await frames.aclose()

    assert len(store.records) == 1
    assert json.loads(store.records[0].content)[0]["text"] == "partial "
