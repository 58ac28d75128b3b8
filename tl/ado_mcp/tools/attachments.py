"""Work item attachment tools.

Attaching a file is two calls: upload the content, then add an ``AttachedFile``
relation to the work item. A failure in the second call leaves the uploaded
attachment orphaned in the organization; nothing is rolled back.
"""

import asyncio
import re
import requests
from loguru import logger
from pathlib import Path
from pydantic import BaseModel, Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import compact, iso_date
from typing import Any, Dict, List, Optional


group = ToolGroup('attachments')

ATTACHMENT_ID = re.compile(r'attachments/([a-f0-9-]+)', re.IGNORECASE)


async def upload_and_attach(
    client: AdoClient,
    work_item_id: int,
    file_name: str,
    content: bytes,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    attachment = await client.upload(
        '_apis/wit/attachments', content, params={'fileName': file_name}
    )
    if not attachment or not attachment.get('url'):
        raise ValueError('Failed to upload attachment')

    logger.info(f'Uploaded attachment {file_name} ({len(content)} bytes)')

    await client.patch_work_item(
        f'_apis/wit/workitems/{work_item_id}',
        [
            {
                'op': 'add',
                'path': '/relations/-',
                'value': {
                    'rel': 'AttachedFile',
                    'url': attachment['url'],
                    'attributes': {'comment': comment or ''},
                },
            }
        ],
    )
    return {
        'id': attachment.get('id', ''),
        'work_item_id': work_item_id,
        'name': file_name,
        'url': attachment['url'],
        'size': len(content),
    }


class AddAttachmentArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    file_path: str = Field(..., min_length=1, description='Path of the local file to attach')
    file_name: Optional[str] = Field(None, description='Attachment name (defaults to the file name)')
    comment: Optional[str] = Field(None, description='Attachment comment')


@group.tool(
    name='add_work_item_attachment',
    description='Attach a local file to a work item',
    args=AddAttachmentArgs,
)
async def add_work_item_attachment(client: AdoClient, params: AddAttachmentArgs) -> Dict[str, Any]:
    path = Path(params.file_path).expanduser()
    if not path.is_file():
        raise ValueError(f'File not found: {params.file_path}')

    content = await asyncio.to_thread(path.read_bytes)
    return await upload_and_attach(
        client, params.id, params.file_name or path.name, content, params.comment
    )


class AddAttachmentFromUrlArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    url: str = Field(..., min_length=1, description='URL to download the file from')
    file_name: str = Field(..., min_length=1, description='Attachment name')
    comment: Optional[str] = Field(None, description='Attachment comment')


def _download(url: str, timeout: int) -> bytes:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ValueError(f'Failed to fetch file from URL: {str(e)}') from e
    return response.content


@group.tool(
    name='add_work_item_attachment_from_url',
    description='Download a file from a URL and attach it to a work item',
    args=AddAttachmentFromUrlArgs,
)
async def add_work_item_attachment_from_url(
    client: AdoClient, params: AddAttachmentFromUrlArgs
) -> Dict[str, Any]:
    content = await asyncio.to_thread(_download, params.url, client.timeout)
    return await upload_and_attach(client, params.id, params.file_name, content, params.comment)


class WorkItemIdArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')


@group.tool(
    name='list_work_item_attachments',
    description='List the files attached to a work item',
    args=WorkItemIdArgs,
)
async def list_work_item_attachments(
    client: AdoClient, params: WorkItemIdArgs
) -> List[Dict[str, Any]]:
    work_item = await client.get(f'_apis/wit/workitems/{params.id}', params={'$expand': 'relations'})
    attachments = []
    for relation in (work_item or {}).get('relations') or []:
        if relation.get('rel') != 'AttachedFile' or not relation.get('url'):
            continue
        attributes = relation.get('attributes', {})
        match = ATTACHMENT_ID.search(relation['url'])
        attachments.append(
            compact(
                {
                    'id': match.group(1) if match else relation['url'].rstrip('/').split('/')[-1],
                    'name': attributes.get('name', 'attachment'),
                    'url': relation['url'],
                    'size': attributes.get('resourceSize'),
                    'upload_date': iso_date(attributes.get('resourceCreatedDate')),
                    'comment': attributes.get('comment') or None,
                }
            )
        )
    return attachments


class RemoveAttachmentArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    attachment_id: str = Field(..., min_length=1, description='Attachment ID or URL')


@group.tool(
    name='remove_work_item_attachment',
    description='Remove an attachment from a work item',
    args=RemoveAttachmentArgs,
)
async def remove_work_item_attachment(
    client: AdoClient, params: RemoveAttachmentArgs
) -> Dict[str, Any]:
    work_item = await client.get(f'_apis/wit/workitems/{params.id}', params={'$expand': 'relations'})
    relations = (work_item or {}).get('relations') or []
    if not relations:
        raise ValueError(f'Work item {params.id} has no attachments')

    wanted = params.attachment_id.lower()
    index = next(
        (
            i
            for i, relation in enumerate(relations)
            if relation.get('rel') == 'AttachedFile'
            and wanted in (relation.get('url') or '').lower()
        ),
        None,
    )
    if index is None:
        raise ValueError(f'Attachment {params.attachment_id} not found on work item {params.id}')

    await client.patch_work_item(
        f'_apis/wit/workitems/{params.id}', [{'op': 'remove', 'path': f'/relations/{index}'}]
    )
    return {
        'success': True,
        'work_item_id': params.id,
        'attachment_id': params.attachment_id,
        'message': f'Successfully removed attachment from work item {params.id}',
    }
