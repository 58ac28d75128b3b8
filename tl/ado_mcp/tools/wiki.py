"""Wiki tools.

Page updates use optimistic concurrency: the ETag returned by ``get_wiki_page``
must be passed back as ``version`` when updating the page.
"""

from loguru import logger
from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import ProjectArgs, compact, segment, values
from typing import Any, Dict, List, Optional


group = ToolGroup('wiki')


def wikis_path(project: str) -> str:
    return f'{segment(project)}/_apis/wiki/wikis'


def pages_path(project: str, wiki_id: str) -> str:
    return f'{wikis_path(project)}/{segment(wiki_id)}/pages'


def wiki_info(wiki: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': wiki.get('id'),
            'name': wiki.get('name', ''),
            'type': wiki.get('type'),
            'project_id': wiki.get('projectId'),
            'repository_id': wiki.get('repositoryId'),
            'mapped_path': wiki.get('mappedPath'),
            'remote_url': wiki.get('remoteUrl'),
            'url': wiki.get('url', ''),
        }
    )


def page_tree(page: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': page.get('id'),
            'path': page.get('path', '/'),
            'order': page.get('order'),
            'is_parent_page': page.get('isParentPage', False),
            'git_item_path': page.get('gitItemPath'),
            'sub_pages': [page_tree(child) for child in page.get('subPages') or []] or None,
        }
    )


def etag(response: Any) -> Optional[str]:
    value = response.headers.get('ETag')
    return value.strip('"') if value else None


@group.tool(
    name='list_wikis',
    description='List the wikis of a project',
    args=ProjectArgs,
)
async def list_wikis(client: AdoClient, params: ProjectArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(wikis_path(project))
    return [wiki_info(wiki) for wiki in values(payload)]


class WikiArgs(ProjectArgs):
    wiki_id: str = Field(..., min_length=1, description='Wiki ID or name')


@group.tool(
    name='get_wiki',
    description='Get a wiki by ID or name',
    args=WikiArgs,
)
async def get_wiki(client: AdoClient, params: WikiArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    wiki = await client.get(f'{wikis_path(project)}/{segment(params.wiki_id)}')
    if not wiki:
        raise ValueError(f'Wiki {params.wiki_id} not found')
    return wiki_info(wiki)


class ListWikiPagesArgs(WikiArgs):
    path: Optional[str] = Field(None, description='Start path, the wiki root when omitted')
    recursive: bool = Field(True, description='Include all descendants')


@group.tool(
    name='list_wiki_pages',
    description='List the page tree of a wiki',
    args=ListWikiPagesArgs,
)
async def list_wiki_pages(client: AdoClient, params: ListWikiPagesArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    page = await client.get(
        pages_path(project, params.wiki_id),
        params={
            'path': params.path or '/',
            'recursionLevel': 'full' if params.recursive else 'oneLevel',
        },
    )
    return page_tree(page or {})


class WikiPageArgs(WikiArgs):
    path: str = Field(..., min_length=1, description='Page path')


class GetWikiPageArgs(WikiPageArgs):
    version: Optional[str] = Field(None, description='Branch or commit to read from')
    include_content: bool = Field(True, description='Include page content')


@group.tool(
    name='get_wiki_page',
    description='Get a wiki page with its content and current version (ETag)',
    args=GetWikiPageArgs,
)
async def get_wiki_page(client: AdoClient, params: GetWikiPageArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    query = {'path': params.path, 'includeContent': str(params.include_content).lower()}
    if params.version:
        query['versionDescriptor.version'] = params.version
    response = await client.send('GET', pages_path(project, params.wiki_id), params=query)
    page = response.json() if response.content else {}
    return compact(
        {
            'id': page.get('id'),
            'path': page.get('path', params.path),
            'content': page.get('content') if params.include_content else None,
            'git_item_path': page.get('gitItemPath'),
            'version': etag(response),
            'url': page.get('url'),
            'remote_url': page.get('remoteUrl'),
        }
    )


class CreateWikiPageArgs(WikiPageArgs):
    content: str = Field(..., description='Page content (markdown)')
    comment: Optional[str] = Field(None, description='Commit comment')


@group.tool(
    name='create_wiki_page',
    description='Create a wiki page',
    args=CreateWikiPageArgs,
)
async def create_wiki_page(client: AdoClient, params: CreateWikiPageArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    response = await client.send(
        'PUT',
        pages_path(project, params.wiki_id),
        params={'path': params.path, 'comment': params.comment},
        json={'content': params.content},
    )
    page = response.json() if response.content else {}
    logger.info(f'Created wiki page {params.path} in wiki {params.wiki_id}')
    return compact(
        {
            'id': page.get('id'),
            'path': page.get('path', params.path),
            'version': etag(response),
            'url': page.get('url'),
            'message': f'Successfully created wiki page {params.path}',
        }
    )


class UpdateWikiPageArgs(CreateWikiPageArgs):
    version: str = Field(..., min_length=1, description='Current page version (ETag) from get_wiki_page')


@group.tool(
    name='update_wiki_page',
    description='Update the content of a wiki page',
    args=UpdateWikiPageArgs,
)
async def update_wiki_page(client: AdoClient, params: UpdateWikiPageArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    response = await client.send(
        'PUT',
        pages_path(project, params.wiki_id),
        params={'path': params.path, 'comment': params.comment},
        json={'content': params.content},
        headers={'If-Match': params.version},
    )
    page = response.json() if response.content else {}
    logger.info(f'Updated wiki page {params.path} in wiki {params.wiki_id}')
    return compact(
        {
            'id': page.get('id'),
            'path': page.get('path', params.path),
            'version': etag(response),
            'url': page.get('url'),
            'message': f'Successfully updated wiki page {params.path}',
        }
    )


class DeleteWikiPageArgs(WikiPageArgs):
    comment: Optional[str] = Field(None, description='Commit comment')


@group.tool(
    name='delete_wiki_page',
    description='Delete a wiki page',
    args=DeleteWikiPageArgs,
)
async def delete_wiki_page(client: AdoClient, params: DeleteWikiPageArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    await client.delete(
        pages_path(project, params.wiki_id),
        params={'path': params.path, 'comment': params.comment},
    )
    logger.info(f'Deleted wiki page {params.path} from wiki {params.wiki_id}')
    return {
        'path': params.path,
        'deleted': True,
        'message': f'Successfully deleted wiki page {params.path}',
    }
