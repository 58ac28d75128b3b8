"""Service connection (service endpoint) tools."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import ProjectArgs, compact, display_name, segment, values
from typing import Any, Dict, List, Optional


group = ToolGroup('service_connections')


def endpoints_path(project: str) -> str:
    return f'{segment(project)}/_apis/serviceendpoint/endpoints'


def connection_info(endpoint: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': endpoint.get('id'),
            'name': endpoint.get('name', ''),
            'type': endpoint.get('type', ''),
            'url': endpoint.get('url', ''),
            'description': endpoint.get('description') or None,
            'is_ready': endpoint.get('isReady'),
            'is_shared': endpoint.get('isShared'),
            'owner': endpoint.get('owner'),
            'created_by': display_name(endpoint.get('createdBy')),
        }
    )


class ListServiceConnectionsArgs(ProjectArgs):
    type: Optional[str] = Field(None, description='Filter by connection type (azurerm, github, docker, ...)')


@group.tool(
    name='list_service_connections',
    description='List the service connections pipelines use to reach external services',
    args=ListServiceConnectionsArgs,
)
async def list_service_connections(
    client: AdoClient, params: ListServiceConnectionsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(endpoints_path(project), params={'type': params.type})
    return [connection_info(endpoint) for endpoint in values(payload)]


class ServiceConnectionArgs(ProjectArgs):
    connection_id: str = Field(..., min_length=1, description='Service connection ID')


@group.tool(
    name='get_service_connection',
    description='Get a service connection with its authorization scheme (credentials are never returned)',
    args=ServiceConnectionArgs,
)
async def get_service_connection(
    client: AdoClient, params: ServiceConnectionArgs
) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    endpoint = await client.get(f'{endpoints_path(project)}/{segment(params.connection_id)}')
    if not endpoint:
        raise ValueError(f'Service connection {params.connection_id} not found')
    result = connection_info(endpoint)
    authorization = endpoint.get('authorization') or {}
    if authorization.get('scheme'):
        result['authorization_scheme'] = authorization['scheme']
    if endpoint.get('data'):
        result['data'] = endpoint['data']
    return result
