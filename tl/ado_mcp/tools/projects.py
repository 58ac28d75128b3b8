"""Project, team, iteration and area path tools."""

from pydantic import BaseModel, Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.text import format_description
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    TeamArgs,
    compact,
    iso_date,
    segment,
    team_path,
    values,
)
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('projects')


def project_summary(project: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': project.get('id', ''),
            'name': project.get('name', ''),
            'description': format_description(project.get('description')),
            'state': project.get('state', ''),
            'visibility': project.get('visibility', ''),
            'last_update_time': iso_date(project.get('lastUpdateTime')),
            'url': project.get('url', ''),
        }
    )


class ListProjectsArgs(BaseModel):
    state_filter: Literal['wellFormed', 'createPending', 'deleting', 'new', 'all'] = Field(
        'wellFormed', description='Filter projects by state'
    )
    max_results: int = Field(100, ge=1, le=1000, description='Maximum number of projects')


@group.tool(
    name='list_projects',
    description='List all projects in the Azure DevOps organization',
    args=ListProjectsArgs,
)
async def list_projects(client: AdoClient, params: ListProjectsArgs) -> List[Dict[str, Any]]:
    payload = await client.get(
        '_apis/projects', params={'stateFilter': params.state_filter, '$top': params.max_results}
    )
    return [project_summary(project) for project in values(payload)]


@group.tool(
    name='get_project',
    description='Get details of a project including its process template and source control type',
    args=ProjectArgs,
)
async def get_project(client: AdoClient, params: ProjectArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'_apis/projects/{segment(project)}', params={'includeCapabilities': 'true'}
    )
    capabilities = payload.get('capabilities', {})
    result = project_summary(payload)
    result.update(
        compact(
            {
                'process_template': capabilities.get('processTemplate', {}).get('templateName'),
                'source_control_type': capabilities.get('versioncontrol', {}).get(
                    'sourceControlType'
                ),
                'default_team': payload.get('defaultTeam', {}).get('name'),
            }
        )
    )
    return result


class ListTeamsArgs(ProjectArgs):
    mine: bool = Field(False, description='Only teams the authenticated user belongs to')


@group.tool(
    name='list_teams',
    description='List the teams of a project',
    args=ListTeamsArgs,
)
async def list_teams(client: AdoClient, params: ListTeamsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'_apis/projects/{segment(project)}/teams',
        params={'$mine': 'true' if params.mine else None},
    )
    return [
        compact(
            {
                'id': team.get('id', ''),
                'name': team.get('name', ''),
                'description': team.get('description') or None,
                'url': team.get('url', ''),
            }
        )
        for team in values(payload)
    ]


class TeamMembersArgs(ProjectArgs):
    team: str = Field(..., min_length=1, description='Team name or ID')


@group.tool(
    name='get_team_members',
    description='List the members of a team',
    args=TeamMembersArgs,
)
async def get_team_members(client: AdoClient, params: TeamMembersArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'_apis/projects/{segment(project)}/teams/{segment(params.team)}/members'
    )
    members = []
    for member in values(payload):
        identity = member.get('identity', {})
        members.append(
            compact(
                {
                    'id': identity.get('id', ''),
                    'display_name': identity.get('displayName', ''),
                    'email': identity.get('uniqueName'),
                    'is_team_admin': member.get('isTeamAdmin', False),
                    'url': identity.get('url', ''),
                }
            )
        )
    return members


def iteration_info(iteration: Dict[str, Any]) -> Dict[str, Any]:
    attributes = iteration.get('attributes', {})
    return compact(
        {
            'id': iteration.get('id', ''),
            'name': iteration.get('name', ''),
            'path': iteration.get('path', ''),
            'start_date': iso_date(attributes.get('startDate')),
            'end_date': iso_date(attributes.get('finishDate')),
            'timeframe': attributes.get('timeFrame', 'unknown'),
            'url': iteration.get('url', ''),
        }
    )


class ListIterationsArgs(TeamArgs):
    timeframe: Literal['past', 'current', 'future', 'all'] = Field(
        'all', description='Only iterations in this timeframe'
    )


@group.tool(
    name='list_iterations',
    description='List the iterations (sprints) of a team',
    args=ListIterationsArgs,
)
async def list_iterations(client: AdoClient, params: ListIterationsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{team_path(project, params.team)}/_apis/work/teamsettings/iterations'
    )
    iterations = [iteration_info(iteration) for iteration in values(payload)]
    if params.timeframe != 'all':
        iterations = [i for i in iterations if i.get('timeframe') == params.timeframe]
    return iterations


@group.tool(
    name='get_current_iteration',
    description='Get the current iteration (sprint) of a team',
    args=TeamArgs,
)
async def get_current_iteration(client: AdoClient, params: TeamArgs) -> Optional[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{team_path(project, params.team)}/_apis/work/teamsettings/iterations',
        params={'$timeframe': 'current'},
    )
    iterations = values(payload)
    if not iterations:
        return None
    return iteration_info(iterations[0])


def area_tree(node: Dict[str, Any], project: str) -> Dict[str, Any]:
    area = {
        'id': node.get('id', 0),
        'name': node.get('name', ''),
        'path': node.get('path') or f'\\{project}\\Area',
        'has_children': node.get('hasChildren', False),
    }
    if node.get('children'):
        area['children'] = [area_tree(child, project) for child in node['children']]
    return area


class ListAreaPathsArgs(ProjectArgs):
    depth: int = Field(3, ge=1, le=10, description='How many levels to traverse')


@group.tool(
    name='list_area_paths',
    description='List the area path tree of a project',
    args=ListAreaPathsArgs,
)
async def list_area_paths(client: AdoClient, params: ListAreaPathsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    root = await client.get(
        f'{segment(project)}/_apis/wit/classificationnodes/Areas', params={'$depth': params.depth}
    )
    if not root:
        return []
    return [area_tree(root, project)]
