"""Tests for the tool registry and the call dispatcher."""

import json
import pytest
from _fakes import FakeAdoClient, parse
from pydantic import BaseModel, Field
from tl.ado_mcp.dispatcher import Dispatcher, ToolRegistry, error_message
from tl.ado_mcp.errors import AdoApiError, UnknownToolError
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.catalog import ALL_GROUPS


class EchoArgs(BaseModel):
    value: str = Field(..., description='Value to echo')


def make_group(name='sample'):
    group = ToolGroup(name)

    @group.tool(name='echo', description='Echo a value', args=EchoArgs)
    async def echo(client, params):
        return {'value': params.value}

    @group.tool(name='boom', description='Always fails')
    async def boom(client, params):
        raise RuntimeError('kaboom')

    @group.tool(name='silent_boom', description='Fails without a message')
    async def silent_boom(client, params):
        raise KeyError()

    @group.tool(name='remote_failure', description='Remote API rejects the call')
    async def remote_failure(client, params):
        raise AdoApiError(404, 'Work item 42 does not exist')

    @group.tool(name='odd_payload', description='Returns non-JSON native values')
    async def odd_payload(client, params):
        return {'items': ('a', 'b'), 'when': Opaque()}

    return group


class Opaque:
    def __str__(self):
        return 'opaque-value'


@pytest.fixture
def sample_dispatcher(fake_client):
    return Dispatcher(ToolRegistry([make_group()]), fake_client)


class TestToolRegistry:
    def test_all_domains_register(self, registry):
        assert [group.name for group in registry.groups] == [
            'work_items',
            'links',
            'attachments',
            'boards',
            'projects',
            'git',
            'pull_requests',
            'pipelines',
            'builds',
            'releases',
            'wiki',
            'test_plans',
            'artifacts',
            'service_connections',
            'variable_groups',
            'users',
            'notifications',
            'dashboards',
            'policies',
        ]

    def test_tool_names_are_unique(self, registry):
        names = [tool.name for tool in registry.list_tools()]
        assert len(names) == len(set(names)) == len(registry)

    def test_list_order_follows_domain_then_declaration_order(self, registry):
        expected = [d.name for group in ALL_GROUPS for d in group.descriptors]
        assert [tool.name for tool in registry.list_tools()] == expected

    def test_every_descriptor_has_a_handler_and_vice_versa(self, registry):
        for group in registry.groups:
            assert {d.name for d in group.descriptors} == group.names
            for name in group.names:
                assert registry.owner(name) is group
                assert name in group

    def test_descriptors_have_object_schemas(self, registry):
        for tool in registry.list_tools():
            assert tool.description
            assert tool.inputSchema['type'] == 'object'
            assert 'properties' in tool.inputSchema

    def test_known_tools_present(self, registry):
        for name in ('list_work_items', 'get_file_content', 'run_pipeline', 'get_release_logs'):
            assert name in registry

    def test_owner_of_unknown_tool(self, registry):
        with pytest.raises(UnknownToolError) as exc_info:
            registry.owner('no_such_tool')
        assert exc_info.value.name == 'no_such_tool'

    def test_duplicate_across_domains_is_rejected(self):
        with pytest.raises(ValueError, match='echo'):
            ToolRegistry([make_group('first'), make_group('second')])

    def test_duplicate_within_domain_is_rejected(self):
        group = make_group()
        with pytest.raises(ValueError, match='already registered'):

            @group.tool(name='echo', description='Again')
            async def again(client, params):
                return None

    def test_list_is_immutable(self, registry):
        assert isinstance(registry.list_tools(), tuple)


class TestDispatcher:
    async def test_success_envelope(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('echo', {'value': 'hi'})
        assert result.isError is False
        assert parse(result) == {'value': 'hi'}
        assert result.content[0].text == json.dumps({'value': 'hi'}, indent=2)

    async def test_non_ascii_text_is_kept_readable(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('echo', {'value': 'Café ☕ • done'})
        assert '"Café ☕ • done"' in result.content[0].text
        assert parse(result) == {'value': 'Café ☕ • done'}

    @pytest.mark.parametrize('arguments', [None, {}, {'value': 'x'}, {'nested': {'a': [1, 2]}}])
    async def test_unknown_tool_names_the_tool(self, dispatcher, arguments):
        result = await dispatcher.call_tool('definitely_not_a_tool', arguments)
        assert result.isError is True
        assert parse(result) == {'error': 'Unknown tool: definitely_not_a_tool'}

    async def test_unknown_tool_with_odd_name(self, dispatcher):
        result = await dispatcher.call_tool('weird name "quoted"', {})
        assert result.isError is True
        assert 'weird name "quoted"' in parse(result)['error']

    async def test_handler_exception_becomes_error_envelope(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('boom', {})
        assert result.isError is True
        assert parse(result) == {'error': 'kaboom'}

    async def test_exception_without_message_uses_type_name(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('silent_boom', {})
        assert result.isError is True
        assert parse(result) == {'error': 'KeyError'}

    async def test_remote_error_message(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('remote_failure', {})
        assert result.isError is True
        assert parse(result) == {'error': 'Azure DevOps API error (404): Work item 42 does not exist'}

    async def test_validation_error_names_field(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('echo', {})
        assert result.isError is True
        message = parse(result)['error']
        assert message.startswith('Invalid arguments for echo')
        assert 'value' in message

    async def test_payload_with_non_json_values_is_stringified(self, sample_dispatcher):
        result = await sample_dispatcher.call_tool('odd_payload', {})
        assert result.isError is False
        assert parse(result) == {'items': ['a', 'b'], 'when': 'opaque-value'}

    async def test_real_handler_failure_from_client(self, dispatcher, fake_client):
        fake_client.fail(
            'GET', 'Contoso/_apis/git/repositories', AdoApiError(401, 'Access denied')
        )
        result = await dispatcher.call_tool('list_repositories', {})
        assert result.isError is True
        assert parse(result) == {'error': 'Azure DevOps API error (401): Access denied'}

    async def test_missing_project_is_reported(self, registry):
        dispatcher = Dispatcher(registry, FakeAdoClient(default_project=None))
        result = await dispatcher.call_tool('list_repositories', {})
        assert result.isError is True
        assert 'Project is required' in parse(result)['error']


class TestErrorMessage:
    def test_uses_message(self):
        assert error_message(ValueError('bad')) == 'bad'

    def test_falls_back_to_type_name(self):
        assert error_message(RuntimeError()) == 'RuntimeError'
