import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Parameters filled in by the executor rather than the model.
INJECTED_PARAMS = ("workspace_path",)


@dataclass
class ToolOutcome:
    """What a tool execution hands back to the conversation."""

    content: str
    is_error: bool = False


class ToolExecutor(Protocol):
    """Runs a named tool. Failures are reported through ``is_error``."""

    def __call__(
        self,
        name: str,
        arguments: dict,
        workspace_path: str | None,
    ) -> Awaitable[ToolOutcome]: ...


class ToolSchema(BaseModel):
    name: str
    description: str = ""
    input_schema: dict = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


def select_tools(
    schemas: Iterable[ToolSchema],
    allowed: Iterable[str] | None = None,
    disallowed: Iterable[str] | None = None,
) -> list[ToolSchema]:
    """Filter *schemas* by an allow list, then a deny list.

    ``allowed=None`` keeps everything; an empty allow list keeps nothing.
    """
    allowed_set = set(allowed) if allowed is not None else None
    disallowed_set = set(disallowed or ())
    return [
        s for s in schemas
        if (allowed_set is None or s.name in allowed_set)
        and s.name not in disallowed_set
    ]


def to_ollama_functions(schemas: Iterable[ToolSchema]) -> list[dict]:
    """Translate tool schemas into Ollama's function-call shape."""
    return [
        {
            "type": "function",
            "function": {
                "name": s.name,
                "description": s.description,
                "parameters": s.input_schema,
            },
        }
        for s in schemas
    ]


_TYPE_MAPPING = {
    'str': 'string',
    'int': 'integer',
    'float': 'number',
    'bool': 'boolean',
    'NoneType': 'null',
    'dict': 'object',
    'list': 'array',
    'tuple': 'array',  # closest equivalent
    'set': 'array',    # closest equivalent
}


def normalize_to_json_type(annotation: Any) -> str:
    name = getattr(annotation, "__name__", str(annotation))
    return _TYPE_MAPPING.get(name, 'string')


class Tool(BaseModel):
    """A Python function exposed to the model as a tool."""

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def from_function(cls, func: Callable) -> "Tool":
        return cls(
            func=func,
            name=func.__name__,
            description=inspect.getdoc(func) or "",
        )

    def tool_schema(self) -> ToolSchema:
        signature = inspect.signature(self.func)
        properties = {}
        required = []
        for param_name, param in signature.parameters.items():
            # injected parameters never reach the model
            if param_name in INJECTED_PARAMS:
                continue
            annotation = param.annotation
            if annotation is inspect.Parameter.empty:
                annotation = str
            properties[param_name] = {
                "type": normalize_to_json_type(annotation),
                "description": "",
            }
            if param.default is inspect.Parameter.empty:
                required.append(param_name)
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )

    async def __call__(self, **kwargs) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)
        return await asyncio.to_thread(self.func, **kwargs)


def tool(func: Callable) -> Tool:
    """Decorator turning a plain or async function into a :class:`Tool`."""
    return Tool.from_function(func)


class ToolRegistry:
    """Default :class:`ToolExecutor` backed by in-process :class:`Tool` objects.

    Args:
        tools: The tools this registry can run. Names must be unique.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self.tools: dict[str, Tool] = {}
        for t in tools:
            if t.name in self.tools:
                raise ValueError(f"Duplicate tool name: '{t.name}'")
            self.tools[t.name] = t

    def schemas(self) -> list[ToolSchema]:
        return [t.tool_schema() for t in self.tools.values()]

    async def __call__(
        self,
        name: str,
        arguments: dict,
        workspace_path: str | None = None,
    ) -> ToolOutcome:
        tool_obj = self.tools.get(name)
        if tool_obj is None:
            logger.warning(f"Tool not found: {name}")
            return ToolOutcome(content=f"Error: tool '{name}' not found", is_error=True)

        params = dict(arguments)
        signature = inspect.signature(tool_obj.func)
        if "workspace_path" in signature.parameters:
            params["workspace_path"] = workspace_path
        try:
            signature.bind(**params)
        except TypeError as e:
            logger.warning(f"Invalid arguments for {name}: {e}")
            return ToolOutcome(content=f"Error: invalid arguments for {name}: {e}", is_error=True)

        logger.info(f"Calling {name} with {arguments}")
        try:
            result = await tool_obj(**params)
        except Exception as e:
            logger.error(f"Tool {name} raised: {e}")
            return ToolOutcome(content=f"Error calling {name}: {e}", is_error=True)

        if isinstance(result, ToolOutcome):
            return result
        content = result if isinstance(result, str) else json.dumps(result)
        return ToolOutcome(content=content)
