from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    images: list[str] | None = None

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    def to_ollama(self) -> dict[str, Any]:
        """Render the message in the shape ``/api/chat`` expects."""
        payload: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.images:
            payload["images"] = list(self.images)
        return payload


class ToolCallRequestMessage(Message):
    """Assistant turn that asked for one or more tools to run."""

    tool_calls: list

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list) -> list[dict]:
        return [t.to_ollama() for t in tool_calls]

    def to_ollama(self) -> dict[str, Any]:
        payload = super().to_ollama()
        payload["tool_calls"] = [t.to_ollama() for t in self.tool_calls]
        return payload


class ToolResultMessage(Message):
    tool_name: str
    tool_call_id: str
    is_error: bool = False

    def to_ollama(self) -> dict[str, Any]:
        payload = super().to_ollama()
        payload["tool_name"] = self.tool_name
        return payload
