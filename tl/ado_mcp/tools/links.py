"""Work item link tools."""

import re
from pydantic import BaseModel, Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import compact
from tl.ado_mcp.tools.work_items import get_work_items_batch
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('links')

LinkType = Literal[
    'parent',
    'child',
    'related',
    'predecessor',
    'successor',
    'duplicate',
    'duplicate-of',
    'tests',
    'tested-by',
]

LINK_TYPES: Dict[str, str] = {
    'parent': 'System.LinkTypes.Hierarchy-Reverse',
    'child': 'System.LinkTypes.Hierarchy-Forward',
    'related': 'System.LinkTypes.Related',
    'predecessor': 'System.LinkTypes.Dependency-Reverse',
    'successor': 'System.LinkTypes.Dependency-Forward',
    'duplicate': 'System.LinkTypes.Duplicate-Forward',
    'duplicate-of': 'System.LinkTypes.Duplicate-Reverse',
    'tests': 'Microsoft.VSTS.Common.TestedBy-Reverse',
    'tested-by': 'Microsoft.VSTS.Common.TestedBy-Forward',
}
LINK_NAMES = {rel: name for name, rel in LINK_TYPES.items()}

WORK_ITEM_ID = re.compile(r'workItems/(\d+)', re.IGNORECASE)


def linked_id(url: Optional[str]) -> Optional[int]:
    match = WORK_ITEM_ID.search(url or '')
    return int(match.group(1)) if match else None


class LinkWorkItemsArgs(BaseModel):
    source_id: int = Field(..., ge=1, description='Source work item ID')
    target_id: int = Field(..., ge=1, description='Target work item ID')
    link_type: LinkType = Field(..., description='Relationship of the target to the source')
    comment: Optional[str] = Field(None, description='Comment stored on the link')


@group.tool(
    name='link_work_items',
    description='Create a link between two work items',
    args=LinkWorkItemsArgs,
)
async def link_work_items(client: AdoClient, params: LinkWorkItemsArgs) -> Dict[str, Any]:
    relation: Dict[str, Any] = {
        'rel': LINK_TYPES[params.link_type],
        'url': f'{client.organization_url}/_apis/wit/workItems/{params.target_id}',
    }
    if params.comment:
        relation['attributes'] = {'comment': params.comment}

    updated = await client.patch_work_item(
        f'_apis/wit/workitems/{params.source_id}',
        [{'op': 'add', 'path': '/relations/-', 'value': relation}],
    )
    return {
        'source_id': params.source_id,
        'target_id': params.target_id,
        'link_type': params.link_type,
        'rev': updated.get('rev'),
        'message': f'Linked work item {params.source_id} to {params.target_id} as {params.link_type}',
    }


class RemoveWorkItemLinkArgs(BaseModel):
    source_id: int = Field(..., ge=1, description='Source work item ID')
    target_id: int = Field(..., ge=1, description='Target work item ID')
    link_type: Optional[LinkType] = Field(
        None, description='Only remove a link of this type (any type when omitted)'
    )


@group.tool(
    name='remove_work_item_link',
    description='Remove a link between two work items',
    args=RemoveWorkItemLinkArgs,
)
async def remove_work_item_link(
    client: AdoClient, params: RemoveWorkItemLinkArgs
) -> Dict[str, Any]:
    work_item = await client.get(
        f'_apis/wit/workitems/{params.source_id}', params={'$expand': 'relations'}
    )
    relations = (work_item or {}).get('relations') or []
    rel = LINK_TYPES[params.link_type] if params.link_type else None

    index = next(
        (
            i
            for i, relation in enumerate(relations)
            if linked_id(relation.get('url')) == params.target_id
            and (rel is None or relation.get('rel') == rel)
        ),
        None,
    )
    if index is None:
        raise ValueError(
            f'No link found between work item {params.source_id} and {params.target_id}'
        )

    removed_rel = relations[index].get('rel')
    updated = await client.patch_work_item(
        f'_apis/wit/workitems/{params.source_id}',
        [{'op': 'remove', 'path': f'/relations/{index}'}],
    )
    return {
        'source_id': params.source_id,
        'target_id': params.target_id,
        'link_type': LINK_NAMES.get(removed_rel, removed_rel),
        'rev': updated.get('rev'),
        'message': f'Removed link between work item {params.source_id} and {params.target_id}',
    }


class GetLinkedWorkItemsArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    link_type: Optional[LinkType] = Field(None, description='Filter by link type')


@group.tool(
    name='get_linked_work_items',
    description=(
        'Get the work items linked to a work item, optionally filtered by link type. '
        'Returns the linked item ID, title, state, type and relationship.'
    ),
    args=GetLinkedWorkItemsArgs,
)
async def get_linked_work_items(
    client: AdoClient, params: GetLinkedWorkItemsArgs
) -> List[Dict[str, Any]]:
    work_item = await client.get(f'_apis/wit/workitems/{params.id}', params={'$expand': 'relations'})
    if not work_item:
        raise ValueError(f'Work item {params.id} not found')

    wanted = LINK_TYPES[params.link_type] if params.link_type else None
    links = []
    for relation in work_item.get('relations') or []:
        rel = relation.get('rel')
        if rel not in LINK_NAMES or (wanted and rel != wanted):
            continue
        target = linked_id(relation.get('url'))
        if target is not None:
            links.append((target, LINK_NAMES[rel], relation.get('attributes', {}).get('comment')))

    if not links:
        return []

    details = {
        item.get('id'): item.get('fields', {})
        for item in await get_work_items_batch(
            client,
            [target for target, _, _ in links],
            fields=['System.Title', 'System.State', 'System.WorkItemType'],
        )
    }
    return [
        compact(
            {
                'id': target,
                'link_type': link_type,
                'title': details.get(target, {}).get('System.Title'),
                'state': details.get(target, {}).get('System.State'),
                'type': details.get(target, {}).get('System.WorkItemType'),
                'comment': comment,
            }
        )
        for target, link_type, comment in links
    ]
