"""Tests for tool argument validation and advertised schemas."""

import pytest
from _fakes import parse
from tl.ado_mcp.errors import ToolValidationError, UnknownToolError
from tl.ado_mcp.tools import builds, git, work_items
from tl.ado_mcp.tools.base import input_schema
from tl.ado_mcp.tools.common import RepositoryArgs


class TestInputSchema:
    def test_optional_fields_collapse_to_plain_type(self):
        schema = input_schema(RepositoryArgs)
        assert schema['type'] == 'object'
        assert schema['properties']['project'] == {
            'type': 'string',
            'description': 'Project name (defaults to AZURE_DEVOPS_PROJECT)',
        }
        assert schema['required'] == ['repository']

    def test_titles_are_removed(self, registry):
        def walk(node, in_properties=False):
            if isinstance(node, dict):
                if not in_properties:
                    assert 'title' not in node
                for key, value in node.items():
                    walk(value, in_properties=not in_properties and key in ('properties', '$defs'))
            elif isinstance(node, list):
                for item in node:
                    walk(item)

        for tool in registry.list_tools():
            walk(tool.inputSchema)

    def test_field_named_title_is_kept(self, registry):
        tool = next(t for t in registry.list_tools() if t.name == 'create_work_item')
        assert 'title' in tool.inputSchema['properties']
        assert set(tool.inputSchema['required']) == {'type', 'title'}

    def test_enums_and_ranges(self, registry):
        tool = next(t for t in registry.list_tools() if t.name == 'list_builds')
        properties = tool.inputSchema['properties']
        assert 'failed' in properties['result']['enum']
        assert properties['max_results']['minimum'] == 1
        assert properties['max_results']['default'] == 50

    def test_no_argument_tool(self, registry):
        tool = next(t for t in registry.list_tools() if t.name == 'get_current_user')
        assert tool.inputSchema == {'type': 'object', 'properties': {}}

    def test_model_docstrings_are_not_advertised(self, registry):
        for tool in registry.list_tools():
            assert 'description' not in tool.inputSchema, tool.name
        assert input_schema(RepositoryArgs)['properties']['repository']['description'] == (
            'Repository name or ID'
        )


class TestValidate:
    def test_defaults_are_filled(self):
        params = builds.group.validate('list_builds', {})
        assert params.max_results == 50
        assert params.project is None

    def test_none_arguments_are_treated_as_empty(self):
        params = builds.group.validate('list_builds', None)
        assert params.max_results == 50

    def test_extra_fields_are_ignored(self):
        params = git.group.validate('get_repository', {'repository': 'web', 'futureOption': True})
        assert params.repository == 'web'
        assert not hasattr(params, 'futureOption')

    def test_missing_required_field(self):
        with pytest.raises(ToolValidationError) as exc_info:
            git.group.validate('get_repository', {})
        assert exc_info.value.fields == ['repository']
        assert 'repository' in str(exc_info.value)

    def test_out_of_range_value(self):
        with pytest.raises(ToolValidationError) as exc_info:
            builds.group.validate('list_builds', {'max_results': 0})
        assert exc_info.value.fields == ['max_results']

    def test_enum_value(self):
        with pytest.raises(ToolValidationError) as exc_info:
            builds.group.validate('list_builds', {'result': 'exploded'})
        assert exc_info.value.fields == ['result']

    def test_wrong_type(self):
        with pytest.raises(ToolValidationError, match='Invalid arguments for get_work_item'):
            work_items.group.validate('get_work_item', {'id': 'not-a-number'})

    def test_several_fields_are_reported(self):
        with pytest.raises(ToolValidationError) as exc_info:
            work_items.group.validate('create_work_item', {'priority': 9})
        assert set(exc_info.value.fields) == {'type', 'title', 'priority'}

    def test_unknown_tool_in_group(self):
        with pytest.raises(UnknownToolError):
            git.group.validate('list_builds', {})


class TestNoSideEffectsOnInvalidInput:
    @pytest.mark.parametrize(
        'name, arguments',
        [
            ('get_repository', {}),
            ('create_work_item', {'title': 'Missing type'}),
            ('update_work_item', {'title': 'Missing id'}),
            ('delete_branch', {'repository': 'web'}),
            ('add_work_item_attachment', {'work_item_id': 1}),
            ('run_pipeline', {'branch': 'main'}),
            ('queue_build', {'definition_id': 0}),
            ('update_wiki_page', {'wiki_id': 'w', 'path': '/a', 'content': 'x'}),
            ('approve_release', {'release_id': 1, 'approval_id': 2, 'status': 'maybe'}),
            ('link_work_items', {'source_id': 1, 'target_id': 2, 'link_type': 'cousin'}),
        ],
    )
    async def test_zero_client_calls(self, dispatcher, fake_client, name, arguments):
        result = await dispatcher.call_tool(name, arguments)
        assert result.isError is True
        assert parse(result)['error'].startswith(f'Invalid arguments for {name}')
        assert fake_client.calls == []
