import logging
from collections.abc import AsyncIterator

import httpx
from pydantic import BaseModel, ConfigDict

from tarsier.config import Settings
from tarsier.errors import TransportError
from tarsier.message import Message

logger = logging.getLogger(__name__)

# Models known to support tool calling
TOOL_CAPABLE_MODELS = ("llama3.1", "llama3.2", "qwen2.5", "mistral", "mixtral")

# Models known to support vision
VISION_CAPABLE_MODELS = ("llama3.2-vision", "llava", "bakllava")


def supports_tools(model: str) -> bool:
    return any(m in model for m in TOOL_CAPABLE_MODELS)


def supports_vision(model: str) -> bool:
    return any(m in model for m in VISION_CAPABLE_MODELS)


class ChatRequest(BaseModel):
    """Everything one backend call needs. Built fresh for every turn."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: list[Message]
    system_prompt: str | None = None
    tools: list[dict] | None = None
    stream: bool = True

    def to_ollama(self) -> dict:
        messages = [m.to_ollama() for m in self.messages]
        if self.system_prompt:
            messages.insert(0, {"role": "system", "content": self.system_prompt})
        body: dict = {
            "model": self.model,
            "messages": messages,
            "stream": self.stream,
        }
        if self.tools:
            body["tools"] = self.tools
        return body


class ModelInfo(BaseModel):
    name: str
    size: int = 0
    modified_at: str = ""
    supports_tools: bool = False
    supports_vision: bool = False


class ModelProvider:
    """A backend that streams chat responses as raw bytes."""

    def stream_chat(self, request: ChatRequest) -> AsyncIterator[bytes]:
        raise NotImplementedError

    async def list_models(self) -> list[ModelInfo]:
        return []

    async def check_health(self) -> bool:
        return False


class OllamaProvider(ModelProvider):
    """Talks to an Ollama server over its native ``/api`` endpoints.

    Args:
        base_url: Root URL of the Ollama server.
        timeout: Request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient``. Mostly useful for tests;
            when given, ``base_url`` and ``timeout`` are ignored.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout: float = 600.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        if client is None:
            client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(timeout, connect=30.0),
            )
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaProvider":
        return cls(
            base_url=settings.ollama_base_url,
            timeout=settings.request_timeout,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """POST ``/api/chat`` and yield the response body as it arrives.

        Raises:
            TransportError: On a non-success status (status code and body
                are attached) or when the connection fails.
        """
        try:
            async with self.client.stream(
                "POST", "/api/chat", json=request.to_ollama(),
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", "replace")
                    raise TransportError(
                        f"Ollama error {response.status_code}: {body or response.reason_phrase}",
                        status_code=response.status_code,
                        body=body,
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Ollama request failed: {e!r}")
            raise TransportError(f"Ollama request failed: {e}") from e

    async def list_models(self) -> list[ModelInfo]:
        """Installed models, or an empty list if Ollama is unreachable."""
        try:
            response = await self.client.get("/api/tags")
        except httpx.HTTPError as e:
            logger.warning(f"Could not list Ollama models: {e!r}")
            return []
        if response.is_error:
            return []
        try:
            data = response.json()
        except ValueError:
            return []
        return [
            ModelInfo(
                name=m["name"],
                size=m.get("size") or 0,
                modified_at=m.get("modified_at") or "",
                supports_tools=supports_tools(m["name"]),
                supports_vision=supports_vision(m["name"]),
            )
            for m in data.get("models") or []
            if isinstance(m, dict) and "name" in m
        ]

    async def check_health(self) -> bool:
        try:
            response = await self.client.get("/api/tags")
        except httpx.HTTPError:
            return False
        return response.is_success
