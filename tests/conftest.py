"""Shared pytest fixtures for the Azure DevOps MCP server tests."""

import logfire
import pytest
from _fakes import FakeAdoClient
from tl.ado_mcp.dispatcher import Dispatcher, ToolRegistry
from tl.ado_mcp.tools.catalog import ALL_GROUPS


logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def fake_client() -> FakeAdoClient:
    return FakeAdoClient()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(ALL_GROUPS)


@pytest.fixture
def dispatcher(registry: ToolRegistry, fake_client: FakeAdoClient) -> Dispatcher:
    return Dispatcher(registry, fake_client)
