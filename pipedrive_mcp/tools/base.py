from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Type

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import InvalidParamsError
from ..pipedrive_client import PipedriveClient

ToolHandler = Callable[[PipedriveClient, Any], Awaitable[Dict[str, Any]]]


class ToolArgs(BaseModel):
    """Base for per-tool argument models. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    def params(self, *exclude: str) -> Dict[str, Any]:
        """Set arguments as upstream query params."""
        return self.model_dump(exclude_none=True, exclude=set(exclude))


class NoArgs(ToolArgs):
    pass


def _simplify_schema(node: Any) -> Any:
    """Strip `title` keys, collapse Optional[X] to X, drop `default: null`."""
    if isinstance(node, list):
        return [_simplify_schema(item) for item in node]
    if not isinstance(node, dict):
        return node
    out = {k: _simplify_schema(v) for k, v in node.items() if not (k == "title" and isinstance(v, str))}
    any_of = out.get("anyOf")
    if isinstance(any_of, list):
        non_null = [s for s in any_of if not (isinstance(s, dict) and s.get("type") == "null")]
        if len(non_null) == 1 and len(non_null) < len(any_of):
            del out["anyOf"]
            merged = dict(non_null[0])
            merged.update(out)
            out = merged
    if "default" in out and out["default"] is None:
        del out["default"]
    return out


def build_input_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = _simplify_schema(model.model_json_schema())
    schema["type"] = "object"
    schema.setdefault("properties", {})
    return schema


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: ToolHandler
    required: Tuple[str, ...] = field(default=())

    def input_schema(self) -> Dict[str, Any]:
        return build_input_schema(self.args_model)

    def to_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema())

    def parse_arguments(self, arguments: Optional[Mapping[str, Any]]) -> ToolArgs:
        """
        Check the required-argument contract, then validate.

        Raises InvalidParamsError naming the first missing field, or carrying
        the first validation message.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidParamsError(f"Arguments for {self.name} must be an object")
        for name in self.required:
            value = arguments.get(name)
            if value is None or value == "":
                raise InvalidParamsError(f'Missing required "{name}" parameter for {self.name}')
        try:
            return self.args_model.model_validate(dict(arguments))
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = first.get("msg", "Invalid arguments")
            raise InvalidParamsError(f"{location}: {message}" if location else message)

    async def invoke(self, client: PipedriveClient, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return await self.handler(client, self.parse_arguments(arguments))


class ToolRegistry:
    """Name -> ToolSpec dispatch table. Order of registration is the listing order."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def tool(
        self,
        name: str,
        description: str,
        args: Type[ToolArgs] = NoArgs,
    ) -> Callable[[ToolHandler], ToolHandler]:
        def decorator(handler: ToolHandler) -> ToolHandler:
            if name in self._tools:
                raise ValueError(f"Tool {name} already registered")
            required = tuple(n for n, f in args.model_fields.items() if f.is_required())
            self._tools[name] = ToolSpec(
                name=name,
                description=description,
                args_model=args,
                handler=handler,
                required=required,
            )
            return handler

        return decorator

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(list(self._tools.values()))

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[Tool]:
        return [spec.to_tool() for spec in self._tools.values()]
