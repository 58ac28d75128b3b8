"""Domain routers pairing tool descriptors with their handlers."""

from dataclasses import dataclass
from mcp.types import Tool
from pydantic import BaseModel, ValidationError
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.errors import ToolValidationError, UnknownToolError
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional, Type


Handler = Callable[[AdoClient, Any], Awaitable[Any]]


class NoArgs(BaseModel):
    """Argument model for tools without parameters."""


def _clean_schema(node: Any, in_properties: bool = False) -> Any:
    if isinstance(node, list):
        return [_clean_schema(item) for item in node]
    if not isinstance(node, dict):
        return node

    cleaned: Dict[str, Any] = {}
    for key, value in node.items():
        # Inside "properties" the keys are field names, not schema keywords
        if key == 'title' and not in_properties:
            continue
        nested_names = not in_properties and key in ('properties', '$defs')
        cleaned[key] = _clean_schema(value, in_properties=nested_names)

    if in_properties:
        return cleaned

    variants = cleaned.get('anyOf')
    if isinstance(variants, list) and len(variants) == 2 and {'type': 'null'} in variants:
        other = next(v for v in variants if v != {'type': 'null'})
        del cleaned['anyOf']
        cleaned = {**other, **cleaned}
    if 'default' in cleaned and cleaned['default'] is None:
        del cleaned['default']
    return cleaned


def input_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """Generate the advertised JSON schema for an argument model.

    Model docstrings are for developers; only field descriptions are advertised.
    """
    schema = _clean_schema(model.model_json_schema())
    schema.pop('description', None)
    for definition in schema.get('$defs', {}).values():
        definition.pop('description', None)
    schema.setdefault('type', 'object')
    schema.setdefault('properties', {})
    return schema


@dataclass(frozen=True)
class RegisteredTool:
    descriptor: Tool
    args: Type[BaseModel]
    handler: Handler


class ToolGroup:
    """Tools of one Azure DevOps domain.

    Handlers are registered with :meth:`tool`; the descriptor list and the
    handler table are both derived from that single registration.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._tools: Dict[str, RegisteredTool] = {}

    def tool(
        self, name: str, description: str, args: Type[BaseModel] = NoArgs
    ) -> Callable[[Handler], Handler]:
        """Register an async handler ``handler(client, params)`` under a tool name.

        Args:
            name: Tool name, unique across all domains
            description: Human readable description advertised to clients
            args: Pydantic model validating the tool arguments
        """

        def decorator(handler: Handler) -> Handler:
            if name in self._tools:
                raise ValueError(f'Tool {name} is already registered in domain {self.name}')
            descriptor = Tool(name=name, description=description, inputSchema=input_schema(args))
            self._tools[name] = RegisteredTool(descriptor=descriptor, args=args, handler=handler)
            return handler

        return decorator

    @property
    def descriptors(self) -> List[Tool]:
        return [registered.descriptor for registered in self._tools.values()]

    @property
    def names(self) -> FrozenSet[str]:
        return frozenset(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def validate(self, name: str, arguments: Optional[Mapping[str, Any]]) -> BaseModel:
        """Validate and default the arguments of a tool call.

        Raises:
            UnknownToolError: If this domain has no tool with that name
            ToolValidationError: If the arguments do not match the tool schema
        """
        registered = self._tools.get(name)
        if registered is None:
            raise UnknownToolError(name)
        try:
            return registered.args.model_validate({} if arguments is None else arguments)
        except ValidationError as e:
            raise ToolValidationError(name, e) from e

    async def handle(
        self, client: AdoClient, name: str, arguments: Optional[Mapping[str, Any]]
    ) -> Any:
        """Validate the arguments and run the tool handler."""
        params = self.validate(name, arguments)
        return await self._tools[name].handler(client, params)
