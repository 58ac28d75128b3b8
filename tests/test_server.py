"""Tests for server wiring and the command line entry point."""

import pytest
from _fakes import parse
from mcp import types
from tl.ado_mcp import server as server_module
from tl.ado_mcp.config import ServerConfig
from tl.ado_mcp.errors import ConfigurationError
from tl.ado_mcp.server import apply_overrides, build_dispatcher, create_server, parse_args

ENV = {'AZURE_DEVOPS_ORG_URL': 'https://dev.azure.com/contoso', 'AZURE_DEVOPS_PAT': 'fake-pat'}


class TestCreateServer:
    async def test_lists_registry_tools(self, dispatcher, registry):
        server = create_server(dispatcher)
        handler = server.request_handlers[types.ListToolsRequest]

        result = await handler(types.ListToolsRequest(method='tools/list'))

        assert server.name == 'tl.ado-mcp'
        assert [tool.name for tool in result.root.tools] == [tool.name for tool in registry.list_tools()]

    async def test_invalid_arguments_come_back_as_error_results(self, dispatcher, fake_client):
        server = create_server(dispatcher)
        handler = server.request_handlers[types.CallToolRequest]

        result = await handler(
            types.CallToolRequest(
                method='tools/call',
                params=types.CallToolRequestParams(name='get_work_item', arguments={'id': 'abc'}),
            )
        )

        assert result.root.isError is True
        assert parse(result.root)['error'].startswith('Invalid arguments for get_work_item')
        assert fake_client.calls == []

    async def test_successful_call(self, dispatcher, fake_client):
        fake_client.respond('GET', '_apis/projects', {'value': [{'id': 'p1', 'name': 'Contoso'}]})
        handler = create_server(dispatcher).request_handlers[types.CallToolRequest]

        result = await handler(
            types.CallToolRequest(
                method='tools/call',
                params=types.CallToolRequestParams(name='list_projects', arguments={}),
            )
        )

        assert result.root.isError is False
        assert parse(result.root)[0]['name'] == 'Contoso'


class TestCommandLine:
    def test_defaults(self):
        args = parse_args([])
        assert args.transport is None
        assert args.port is None

    def test_overrides(self):
        config = ServerConfig.from_env(ENV)
        updated = apply_overrides(config, parse_args(['--transport', 'http', '--host', '0.0.0.0', '--port', '8080']))
        assert updated.transport == 'http'
        assert updated.http_host == '0.0.0.0'
        assert updated.http_port == 8080
        assert updated.personal_access_token == 'fake-pat'
        assert config.transport == 'stdio'

    def test_no_overrides_keeps_config(self):
        config = ServerConfig.from_env(ENV)
        assert apply_overrides(config, parse_args([])) is config

    def test_negative_port(self):
        with pytest.raises(ConfigurationError, match='--port'):
            apply_overrides(ServerConfig.from_env(ENV), parse_args(['--port', '-1']))

    def test_unknown_transport(self):
        with pytest.raises(SystemExit):
            parse_args(['--transport', 'websocket'])

    def test_missing_configuration_exits(self, monkeypatch):
        monkeypatch.setattr(server_module, 'load_dotenv_file', lambda: None)
        monkeypatch.delenv('AZURE_DEVOPS_ORG_URL', raising=False)
        monkeypatch.delenv('AZURE_DEVOPS_PAT', raising=False)

        with pytest.raises(SystemExit) as exc_info:
            server_module.main([])

        assert exc_info.value.code == 1


class TestBuildDispatcher:
    async def test_validates_connection_first(self, monkeypatch):
        async def reject(self):
            raise ConfigurationError('Failed to connect to Azure DevOps: 401')

        monkeypatch.setattr(server_module.AdoClient, 'validate_connection', reject)

        with pytest.raises(ConfigurationError, match='Failed to connect'):
            await build_dispatcher(ServerConfig.from_env(ENV))

    async def test_builds_full_registry(self, monkeypatch):
        async def accept(self):
            return {'id': 'u1'}

        monkeypatch.setattr(server_module.AdoClient, 'validate_connection', accept)

        dispatcher = await build_dispatcher(ServerConfig.from_env({**ENV, 'AZURE_DEVOPS_PROJECT': 'Contoso'}))

        assert len(dispatcher.registry.groups) == 19
        assert dispatcher.client.default_project == 'Contoso'
