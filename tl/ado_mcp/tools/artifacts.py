"""Azure Artifacts feed and package tools.

Feeds live on ``feeds.dev.azure.com``. Organization-scoped feeds are addressed
without a project, project-scoped feeds with one.
"""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import ProjectArgs, compact, iso_date, segment, values
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('artifacts')

HOST = 'feeds'

ProtocolType = Literal['npm', 'nuget', 'maven', 'pypi', 'upack', 'cargo']


def feeds_path(project: Optional[str]) -> str:
    prefix = f'{segment(project)}/' if project else ''
    return f'{prefix}_apis/packaging/feeds'


def feed_info(feed: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': feed.get('id'),
            'name': feed.get('name', ''),
            'description': feed.get('description') or None,
            'project': (feed.get('project') or {}).get('name'),
            'upstream_enabled': feed.get('upstreamEnabled'),
            'upstream_sources': [
                compact({'name': s.get('name'), 'protocol': s.get('protocol'), 'location': s.get('location')})
                for s in feed.get('upstreamSources') or []
            ]
            or None,
            'url': feed.get('url', ''),
        }
    )


def version_info(version: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': version.get('id'),
            'version': version.get('version', ''),
            'is_latest': version.get('isLatest', False),
            'is_listed': version.get('isListed'),
            'publish_date': iso_date(version.get('publishDate')),
            'views': [view.get('name') for view in version.get('views') or []] or None,
        }
    )


def package_info(package: Dict[str, Any]) -> Dict[str, Any]:
    versions = package.get('versions') or []
    latest = next((v for v in versions if v.get('isLatest')), versions[0] if versions else {})
    return compact(
        {
            'id': package.get('id'),
            'name': package.get('name', ''),
            'protocol_type': package.get('protocolType'),
            'latest_version': latest.get('version'),
            'url': package.get('url', ''),
        }
    )


@group.tool(
    name='list_feeds',
    description='List artifact feeds (organization feeds, or project feeds when a project is given)',
    args=ProjectArgs,
)
async def list_feeds(client: AdoClient, params: ProjectArgs) -> List[Dict[str, Any]]:
    payload = await client.get(feeds_path(params.project), host=HOST)
    return [feed_info(feed) for feed in values(payload)]


class FeedArgs(ProjectArgs):
    feed_id: str = Field(..., min_length=1, description='Feed ID or name')


@group.tool(
    name='get_feed',
    description='Get an artifact feed',
    args=FeedArgs,
)
async def get_feed(client: AdoClient, params: FeedArgs) -> Dict[str, Any]:
    feed = await client.get(f'{feeds_path(params.project)}/{segment(params.feed_id)}', host=HOST)
    if not feed:
        raise ValueError(f'Feed {params.feed_id} not found')
    return feed_info(feed)


class ListPackagesArgs(FeedArgs):
    protocol_type: Optional[ProtocolType] = Field(None, description='Filter by package type')
    package_name_query: Optional[str] = Field(None, description='Filter by package name substring')
    max_results: int = Field(50, ge=1, le=1000, description='Maximum number of packages')


@group.tool(
    name='list_packages',
    description='List packages in an artifact feed',
    args=ListPackagesArgs,
)
async def list_packages(client: AdoClient, params: ListPackagesArgs) -> List[Dict[str, Any]]:
    payload = await client.get(
        f'{feeds_path(params.project)}/{segment(params.feed_id)}/packages',
        host=HOST,
        params={
            'protocolType': params.protocol_type,
            'packageNameQuery': params.package_name_query,
            '$top': params.max_results,
        },
    )
    return [package_info(package) for package in values(payload)]


class PackageArgs(FeedArgs):
    package_id: str = Field(..., min_length=1, description='Package ID')


@group.tool(
    name='get_package',
    description='Get a package from an artifact feed',
    args=PackageArgs,
)
async def get_package(client: AdoClient, params: PackageArgs) -> Dict[str, Any]:
    package = await client.get(
        f'{feeds_path(params.project)}/{segment(params.feed_id)}/packages/{segment(params.package_id)}',
        host=HOST,
    )
    if not package:
        raise ValueError(f'Package {params.package_id} not found in feed {params.feed_id}')
    result = package_info(package)
    result['versions'] = [version_info(v) for v in package.get('versions') or []]
    return result


@group.tool(
    name='get_package_versions',
    description='List the versions of a package',
    args=PackageArgs,
)
async def get_package_versions(client: AdoClient, params: PackageArgs) -> List[Dict[str, Any]]:
    payload = await client.get(
        f'{feeds_path(params.project)}/{segment(params.feed_id)}'
        f'/packages/{segment(params.package_id)}/versions',
        host=HOST,
    )
    return [version_info(v) for v in values(payload)]
