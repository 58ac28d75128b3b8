"""Tool registry and call dispatcher.

The registry is built once at startup from the domain routers and is read-only
afterwards. The dispatcher routes a tool call to its owning domain and wraps
whatever happens into a single MCP result envelope.
"""

import json
import logfire
import time
from loguru import logger
from mcp.types import CallToolResult, TextContent, Tool
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.errors import UnknownToolError
from tl.ado_mcp.tools.base import ToolGroup
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


class ToolRegistry:
    """Ordered, immutable set of tools across all domains.

    Args:
        groups: Domain routers in priority order
    """

    def __init__(self, groups: Iterable[ToolGroup]) -> None:
        self._groups: Tuple[ToolGroup, ...] = tuple(groups)

        owners: Dict[str, ToolGroup] = {}
        tools = []
        for group in self._groups:
            for descriptor in group.descriptors:
                if descriptor.name in owners:
                    raise ValueError(
                        f'Tool {descriptor.name} is registered by both '
                        f'{owners[descriptor.name].name} and {group.name}'
                    )
                owners[descriptor.name] = group
                tools.append(descriptor)

        self._tools: Tuple[Tool, ...] = tuple(tools)
        self._owners: Mapping[str, ToolGroup] = MappingProxyType(owners)

    @property
    def groups(self) -> Tuple[ToolGroup, ...]:
        return self._groups

    def list_tools(self) -> Tuple[Tool, ...]:
        return self._tools

    def owner(self, name: str) -> ToolGroup:
        """Return the domain router that handles a tool.

        Raises:
            UnknownToolError: If no domain registered the name
        """
        group = self._owners.get(name)
        if group is None:
            raise UnknownToolError(name)
        return group

    def __contains__(self, name: object) -> bool:
        return name in self._owners

    def __len__(self) -> int:
        return len(self._tools)


def _envelope(payload: Any, is_error: bool = False) -> CallToolResult:
    text = json.dumps(payload, indent=2, default=str, ensure_ascii=False)
    return CallToolResult(content=[TextContent(type='text', text=text)], isError=is_error)


def error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Dispatcher:
    """Route tool calls and build success or failure envelopes."""

    def __init__(self, registry: ToolRegistry, client: AdoClient) -> None:
        self.registry = registry
        self.client = client

    async def call_tool(
        self, name: str, arguments: Optional[Mapping[str, Any]] = None
    ) -> CallToolResult:
        """Execute a tool call.

        Never raises for per-call failures: unknown tools, validation errors,
        remote errors and unexpected exceptions all become an ``isError`` result
        whose text is ``{"error": "<message>"}``.

        Args:
            name: Tool name
            arguments: Raw tool arguments

        Returns:
            The MCP call result
        """
        start = time.monotonic()
        with logfire.span('tool_call {tool}', tool=name):
            try:
                group = self.registry.owner(name)
                result = await group.handle(self.client, name, arguments)
                envelope = _envelope(result)
            except Exception as e:
                message = error_message(e)
                duration_ms = round((time.monotonic() - start) * 1000, 1)
                logger.bind(tool=name, duration_ms=duration_ms).warning(
                    f'Tool {name} failed after {duration_ms}ms: {message}'
                )
                return _envelope({'error': message}, is_error=True)

        duration_ms = round((time.monotonic() - start) * 1000, 1)
        logger.bind(tool=name, duration_ms=duration_ms).info(
            f'Tool {name} completed in {duration_ms}ms'
        )
        return envelope
