"""Pipeline variable group tools. Secret values are always masked."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import ProjectArgs, compact, display_name, iso_date, segment, values
from typing import Any, Dict, List, Optional


group = ToolGroup('variable_groups')

SECRET_MASK = '***'


def groups_path(project: str) -> str:
    return f'{segment(project)}/_apis/distributedtask/variablegroups'


def masked_variables(variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    masked = {}
    for name, variable in (variables or {}).items():
        variable = variable or {}
        if variable.get('isSecret'):
            masked[name] = {'value': SECRET_MASK, 'is_secret': True}
        else:
            masked[name] = {'value': variable.get('value'), 'is_secret': False}
    return masked


def group_info(variable_group: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': variable_group.get('id'),
            'name': variable_group.get('name', ''),
            'description': variable_group.get('description', ''),
            'type': variable_group.get('type'),
            'variable_count': len(variable_group.get('variables') or {}),
            'created_by': display_name(variable_group.get('createdBy')),
            'modified_by': display_name(variable_group.get('modifiedBy')),
            'modified_on': iso_date(variable_group.get('modifiedOn')),
        }
    )


class ListVariableGroupsArgs(ProjectArgs):
    group_name: Optional[str] = Field(None, description='Filter by name (supports * wildcards)')


@group.tool(
    name='list_variable_groups',
    description='List pipeline variable groups in a project',
    args=ListVariableGroupsArgs,
)
async def list_variable_groups(
    client: AdoClient, params: ListVariableGroupsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(groups_path(project), params={'groupName': params.group_name})
    return [group_info(variable_group) for variable_group in values(payload)]


class VariableGroupArgs(ProjectArgs):
    group_id: int = Field(..., ge=1, description='Variable group ID')


@group.tool(
    name='get_variable_group',
    description='Get a variable group with its variables (secrets are masked)',
    args=VariableGroupArgs,
)
async def get_variable_group(client: AdoClient, params: VariableGroupArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    variable_group = await client.get(f'{groups_path(project)}/{params.group_id}')
    if not variable_group:
        raise ValueError(f'Variable group {params.group_id} not found')
    result = group_info(variable_group)
    result['variables'] = masked_variables(variable_group.get('variables'))
    return result
