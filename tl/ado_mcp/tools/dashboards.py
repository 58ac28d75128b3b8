"""Dashboard tools. Dashboards are reporting pages, not Kanban boards."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import TeamArgs, compact, display_name, segment, team_path, values
from typing import Any, Dict, List


group = ToolGroup('dashboards')

DASHBOARDS_API_VERSION = '7.1-preview.3'


def dashboards_path(project: str, team: Any) -> str:
    return f'{team_path(project, team)}/_apis/dashboard/dashboards'


@group.tool(
    name='list_dashboards',
    description='List dashboards of a project or team',
    args=TeamArgs,
)
async def list_dashboards(client: AdoClient, params: TeamArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        dashboards_path(project, params.team), api_version=DASHBOARDS_API_VERSION
    )
    return [
        compact(
            {
                'id': dashboard.get('id'),
                'name': dashboard.get('name', ''),
                'description': dashboard.get('description') or None,
                'owner_id': dashboard.get('ownerId'),
                'position': dashboard.get('position'),
                'url': dashboard.get('url', ''),
            }
        )
        for dashboard in values(payload)
    ]


class DashboardArgs(TeamArgs):
    dashboard_id: str = Field(..., min_length=1, description='Dashboard ID')


@group.tool(
    name='get_dashboard',
    description='Get a dashboard and its widgets',
    args=DashboardArgs,
)
async def get_dashboard(client: AdoClient, params: DashboardArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    dashboard = await client.get(
        f'{dashboards_path(project, params.team)}/{segment(params.dashboard_id)}',
        api_version=DASHBOARDS_API_VERSION,
    )
    if not dashboard:
        raise ValueError(f'Dashboard {params.dashboard_id} not found')
    return compact(
        {
            'id': dashboard.get('id'),
            'name': dashboard.get('name', ''),
            'description': dashboard.get('description') or None,
            'owner_id': dashboard.get('ownerId'),
            'modified_by': display_name(dashboard.get('modifiedBy')),
            'refresh_interval': dashboard.get('refreshInterval'),
            'widgets': [
                compact(
                    {
                        'id': widget.get('id'),
                        'name': widget.get('name', ''),
                        'contribution_id': widget.get('contributionId'),
                        'position': widget.get('position'),
                        'size': widget.get('size'),
                    }
                )
                for widget in dashboard.get('widgets') or []
            ],
            'url': dashboard.get('url', ''),
        }
    )
