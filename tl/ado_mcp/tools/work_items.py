"""Work item tracking tools: WIQL queries, CRUD, comments and per-type shortcuts."""

from loguru import logger
from pydantic import BaseModel, Field
from tl.ado_mcp.ado_client import JSON_PATCH, AdoClient
from tl.ado_mcp.cycle_time import fetch_cycle_times
from tl.ado_mcp.errors import AdoApiError
from tl.ado_mcp.text import format_description
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    chunked,
    compact,
    display_name,
    iso_date,
    segment,
    values,
)
from typing import Any, Dict, List, Literal, Optional, Type


group = ToolGroup('work_items')

BATCH_SIZE = 200
COMMENTS_API_VERSION = '7.1-preview.4'

FIELD_PATHS = {
    'title': 'System.Title',
    'description': 'System.Description',
    'state': 'System.State',
    'assigned_to': 'System.AssignedTo',
    'area_path': 'System.AreaPath',
    'iteration_path': 'System.IterationPath',
    'priority': 'Microsoft.VSTS.Common.Priority',
}

PLANNING_FIELDS = {
    'value_area': 'Microsoft.VSTS.Common.ValueArea',
    'start_date': 'Microsoft.VSTS.Scheduling.StartDate',
    'target_date': 'Microsoft.VSTS.Scheduling.TargetDate',
}

# Result keys of the fields each work item type adds to its details
TYPE_DETAIL_FIELDS = {
    'Epic': PLANNING_FIELDS,
    'Feature': PLANNING_FIELDS,
    'User Story': {
        'acceptance_criteria': 'Microsoft.VSTS.Common.AcceptanceCriteria',
        'story_points': 'Microsoft.VSTS.Scheduling.StoryPoints',
        'value_area': 'Microsoft.VSTS.Common.ValueArea',
    },
    'Bug': {
        'repro_steps': 'Microsoft.VSTS.TCM.ReproSteps',
        'system_info': 'Microsoft.VSTS.TCM.SystemInfo',
        'severity': 'Microsoft.VSTS.Common.Severity',
        'found_in': 'Microsoft.VSTS.Build.FoundIn',
        'integrated_in': 'Microsoft.VSTS.Build.IntegrationBuild',
    },
    'Task': {
        'original_estimate': 'Microsoft.VSTS.Scheduling.OriginalEstimate',
        'remaining_work': 'Microsoft.VSTS.Scheduling.RemainingWork',
        'completed_work': 'Microsoft.VSTS.Scheduling.CompletedWork',
        'activity': 'Microsoft.VSTS.Common.Activity',
    },
}

RICH_TEXT_FIELDS = frozenset(
    {
        'Microsoft.VSTS.Common.AcceptanceCriteria',
        'Microsoft.VSTS.TCM.ReproSteps',
        'Microsoft.VSTS.TCM.SystemInfo',
    }
)
DATE_FIELDS = frozenset(
    {'Microsoft.VSTS.Scheduling.StartDate', 'Microsoft.VSTS.Scheduling.TargetDate'}
)

DEFAULT_TYPED_STATES = ['New', 'Active', 'Resolved', 'Closed']


def escape_wiql(value: str) -> str:
    """Escape a literal for use inside single quotes in WIQL."""
    return value.replace("'", "''")


def wiql_list(items: List[str]) -> str:
    return ', '.join(f"'{escape_wiql(item)}'" for item in items)


async def run_wiql(
    client: AdoClient, project: str, query: str, top: Optional[int] = None
) -> List[int]:
    """Execute a WIQL query and return the matching work item IDs."""
    result = await client.post(
        f'{segment(project)}/_apis/wit/wiql', {'query': query}, params={'$top': top}
    )
    return [item['id'] for item in (result or {}).get('workItems', []) if item.get('id')]


async def get_work_items_batch(
    client: AdoClient,
    ids: List[int],
    project: Optional[str] = None,
    fields: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Fetch work items in batches of 200, preserving the order of ``ids``."""
    prefix = f'{segment(project)}/' if project else ''
    items: List[Dict[str, Any]] = []
    for batch in chunked(ids, BATCH_SIZE):
        params = {
            'ids': ','.join(str(i) for i in batch),
            'fields': ','.join(fields) if fields else None,
            'errorPolicy': 'omit',
        }
        payload = await client.get(f'{prefix}_apis/wit/workitems', params=params)
        items.extend(item for item in values(payload) if item and item.get('fields'))
    return items


def summarize(work_item: Dict[str, Any]) -> Dict[str, Any]:
    fields = work_item.get('fields', {})
    return compact(
        {
            'id': work_item.get('id'),
            'title': fields.get('System.Title', ''),
            'state': fields.get('System.State', ''),
            'type': fields.get('System.WorkItemType', ''),
            'assigned_to': display_name(fields.get('System.AssignedTo')),
            'url': work_item.get('url', ''),
        }
    )


def split_tags(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [tag.strip() for tag in raw.split(';') if tag.strip()]


def field_operations(values_by_name: Dict[str, Any], additional_fields: Optional[Dict[str, Any]]):
    """Build JSON Patch ``add`` operations for the given field values."""
    operations = []
    for name, value in values_by_name.items():
        if value is None:
            continue
        if name == 'tags':
            operations.append({'op': 'add', 'path': '/fields/System.Tags', 'value': '; '.join(value)})
        else:
            operations.append({'op': 'add', 'path': f'/fields/{FIELD_PATHS[name]}', 'value': value})
    for reference_name, value in (additional_fields or {}).items():
        operations.append({'op': 'add', 'path': f'/fields/{reference_name}', 'value': value})
    return operations


async def summaries_for_ids(
    client: AdoClient, ids: List[int], project: str, include_activated_date: bool = False
) -> List[Dict[str, Any]]:
    work_items = await get_work_items_batch(client, ids, project)
    results = [summarize(work_item) for work_item in work_items]

    if include_activated_date and results:
        closed_dates = {
            work_item.get('id'): work_item.get('fields', {}).get('Microsoft.VSTS.Common.ClosedDate')
            for work_item in work_items
        }
        cycle_times = await fetch_cycle_times(
            client,
            [
                {'id': r['id'], 'state': r['state'], 'closed_date': closed_dates.get(r['id'])}
                for r in results
            ],
        )
        for result in results:
            result.update(cycle_times.get(result['id'], {}))

    return results


class ListWorkItemsArgs(ProjectArgs):
    query: str = Field(..., min_length=1, description='WIQL query to execute')
    include_activated_date: bool = Field(
        False,
        description='Include the first activation date and cycle time (one extra call per item)',
    )


@group.tool(
    name='list_work_items',
    description='List work items matching a WIQL query',
    args=ListWorkItemsArgs,
)
async def list_work_items(client: AdoClient, params: ListWorkItemsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    ids = await run_wiql(client, project, params.query)
    if not ids:
        return []
    return await summaries_for_ids(client, ids, project, params.include_activated_date)


class QueryWorkItemsArgs(ProjectArgs):
    work_item_types: Optional[List[str]] = Field(
        None, description="Filter by work item types, e.g. ['Bug', 'Task']"
    )
    states: Optional[List[str]] = Field(None, description='Filter by states')
    assigned_to: Optional[str] = Field(None, description='Filter by assignee (display name or email)')
    area_path: Optional[str] = Field(None, description='Filter by area path (includes children)')
    iteration_path: Optional[str] = Field(None, description='Filter by iteration path (includes children)')
    tags: Optional[List[str]] = Field(None, description='Work items must carry all of these tags')
    search_text: Optional[str] = Field(None, description='Text to find in title or description')
    max_results: int = Field(200, ge=1, le=20000, description='Maximum number of results')
    include_activated_date: bool = Field(False, description='Include activation date and cycle time')


@group.tool(
    name='query_work_items',
    description='Query work items with structured filters instead of raw WIQL',
    args=QueryWorkItemsArgs,
)
async def query_work_items(client: AdoClient, params: QueryWorkItemsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)

    conditions = [f"[System.TeamProject] = '{escape_wiql(project)}'"]
    if params.work_item_types:
        conditions.append(f'[System.WorkItemType] IN ({wiql_list(params.work_item_types)})')
    if params.states:
        conditions.append(f'[System.State] IN ({wiql_list(params.states)})')
    if params.assigned_to:
        conditions.append(f"[System.AssignedTo] CONTAINS '{escape_wiql(params.assigned_to)}'")
    if params.area_path:
        conditions.append(f"[System.AreaPath] UNDER '{escape_wiql(params.area_path)}'")
    if params.iteration_path:
        conditions.append(f"[System.IterationPath] UNDER '{escape_wiql(params.iteration_path)}'")
    for tag in params.tags or []:
        conditions.append(f"[System.Tags] CONTAINS '{escape_wiql(tag)}'")
    if params.search_text:
        text = escape_wiql(params.search_text)
        conditions.append(
            f"([System.Title] CONTAINS '{text}' OR [System.Description] CONTAINS '{text}')"
        )

    query = (
        'SELECT [System.Id] FROM WorkItems WHERE '
        + ' AND '.join(conditions)
        + ' ORDER BY [System.ChangedDate] DESC'
    )
    ids = await run_wiql(client, project, query, top=params.max_results)
    if not ids:
        return []
    return await summaries_for_ids(client, ids, project, params.include_activated_date)


class GetWorkItemArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    include_relations: bool = Field(True, description='Include related links')
    include_attachments: bool = Field(True, description='Include attachment list')


async def get_comments(client: AdoClient, project: str, work_item_id: int):
    """Comments of a work item, or None when the comments API is unavailable."""
    try:
        payload = await client.get(
            f'{segment(project)}/_apis/wit/workItems/{work_item_id}/comments',
            api_version=COMMENTS_API_VERSION,
        )
    except AdoApiError as e:
        logger.warning(f'Failed to get comments for work item {work_item_id}: {str(e)}')
        return None
    return [
        compact(
            {
                'id': comment.get('id'),
                'text': format_description(comment.get('text')) or '',
                'created_by': display_name(comment.get('createdBy')) or '',
                'created_date': iso_date(comment.get('createdDate')),
            }
        )
        for comment in (payload or {}).get('comments', [])
    ]


def detail_value(reference_name: str, value: Any) -> Any:
    if reference_name in RICH_TEXT_FIELDS:
        return format_description(value)
    if reference_name in DATE_FIELDS:
        return iso_date(value)
    return value


async def work_item_details(
    client: AdoClient, params: GetWorkItemArgs, expected_type: Optional[str] = None
) -> Dict[str, Any]:
    """Fetch a work item and reshape it for display.

    When ``expected_type`` is given the work item must be of that type, and
    the fields specific to the type are added to the result.
    """
    expand = 'all' if params.include_relations or params.include_attachments else 'fields'
    work_item = await client.get(f'_apis/wit/workitems/{params.id}', params={'$expand': expand})
    if not work_item or not work_item.get('fields'):
        raise ValueError(f'Work item {params.id} not found')

    fields = work_item['fields']
    relations = work_item.get('relations') or []

    actual_type = fields.get('System.WorkItemType', '')
    if expected_type and actual_type != expected_type:
        raise ValueError(f'Work item {params.id} is a {actual_type}, not a {expected_type}')

    result = {
        'id': work_item.get('id'),
        'rev': work_item.get('rev'),
        'title': fields.get('System.Title', ''),
        'state': fields.get('System.State', ''),
        'type': fields.get('System.WorkItemType', ''),
        'assigned_to': display_name(fields.get('System.AssignedTo')),
        'description': format_description(fields.get('System.Description')),
        'acceptance_criteria': format_description(
            fields.get('Microsoft.VSTS.Common.AcceptanceCriteria')
        ),
        'area_path': fields.get('System.AreaPath', ''),
        'iteration_path': fields.get('System.IterationPath', ''),
        'priority': fields.get('Microsoft.VSTS.Common.Priority'),
        'tags': split_tags(fields.get('System.Tags')),
        'created_date': iso_date(fields.get('System.CreatedDate')),
        'changed_date': iso_date(fields.get('System.ChangedDate')),
        'created_by': display_name(fields.get('System.CreatedBy')) or '',
        'changed_by': display_name(fields.get('System.ChangedBy')) or '',
        'url': work_item.get('url', ''),
    }

    if params.include_relations:
        result['relations'] = [
            compact(
                {
                    'rel': relation.get('rel'),
                    'url': relation.get('url'),
                    'name': relation.get('attributes', {}).get('name'),
                    'comment': relation.get('attributes', {}).get('comment'),
                }
            )
            for relation in relations
            if relation.get('rel') and relation.get('url')
        ]
    if params.include_attachments:
        result['attachments'] = [
            compact(
                {
                    'id': relation['url'].rstrip('/').split('/')[-1],
                    'name': relation.get('attributes', {}).get('name', 'attachment'),
                    'url': relation['url'],
                    'size': relation.get('attributes', {}).get('resourceSize'),
                }
            )
            for relation in relations
            if relation.get('rel') == 'AttachedFile' and relation.get('url')
        ]

    for key, reference_name in TYPE_DETAIL_FIELDS.get(expected_type, {}).items():
        result[key] = detail_value(reference_name, fields.get(reference_name))

    project = fields.get('System.TeamProject')
    if project:
        result['comments'] = await get_comments(client, project, params.id)

    return compact(result)


@group.tool(
    name='get_work_item',
    description='Get a work item with its fields, relations, attachments and comments',
    args=GetWorkItemArgs,
)
async def get_work_item(client: AdoClient, params: GetWorkItemArgs) -> Dict[str, Any]:
    return await work_item_details(client, params)


class NewWorkItemArgs(ProjectArgs):
    title: str = Field(..., min_length=1, description='Work item title')
    assigned_to: Optional[str] = Field(None, description='Assignee email or display name')
    area_path: Optional[str] = Field(None, description='Area path')
    iteration_path: Optional[str] = Field(None, description='Iteration path')
    tags: Optional[List[str]] = Field(None, description='Tags to apply')
    priority: Optional[int] = Field(None, ge=1, le=4, description='Priority (1-4)')
    additional_fields: Optional[Dict[str, Any]] = Field(
        None, description='Additional field reference names and values'
    )


class DescribedWorkItemArgs(NewWorkItemArgs):
    description: Optional[str] = Field(None, description='Description (HTML supported)')


class ChildWorkItemArgs(DescribedWorkItemArgs):
    parent_id: Optional[int] = Field(None, ge=1, description='Parent work item ID')


class CreateWorkItemArgs(ChildWorkItemArgs):
    type: str = Field(..., min_length=1, description='Work item type, e.g. Bug, Task, User Story')


async def create_typed_work_item(
    client: AdoClient,
    work_item_type: str,
    params: NewWorkItemArgs,
    type_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create a work item of the given type.

    Args:
        client: Azure DevOps client
        work_item_type: Work item type name, e.g. ``User Story``
        params: Common creation arguments; ``description`` and ``parent_id``
            are used when the argument model has them
        type_fields: Type specific field values keyed by reference name;
            None values are skipped and ``additional_fields`` take precedence
    """
    project = client.resolve_project(params.project)

    extra_fields = {name: value for name, value in (type_fields or {}).items() if value is not None}
    extra_fields.update(params.additional_fields or {})
    operations = field_operations(
        {
            'title': params.title,
            'description': getattr(params, 'description', None),
            'assigned_to': params.assigned_to,
            'area_path': params.area_path,
            'iteration_path': params.iteration_path,
            'tags': params.tags,
            'priority': params.priority,
        },
        extra_fields,
    )
    parent_id = getattr(params, 'parent_id', None)
    if parent_id:
        operations.append(
            {
                'op': 'add',
                'path': '/relations/-',
                'value': {
                    'rel': 'System.LinkTypes.Hierarchy-Reverse',
                    'url': f'{client.organization_url}/_apis/wit/workItems/{parent_id}',
                },
            }
        )

    created = await client.post(
        f'{segment(project)}/_apis/wit/workitems/{segment("$" + work_item_type)}',
        operations,
        content_type=JSON_PATCH,
    )
    if not created or not created.get('id'):
        raise ValueError(f'Failed to create {work_item_type}')

    logger.info(f'Created {work_item_type} {created.get("id")} in project {project}')
    return compact(
        {
            'id': created.get('id'),
            'rev': created.get('rev'),
            'title': created.get('fields', {}).get('System.Title', params.title),
            'state': created.get('fields', {}).get('System.State'),
            'type': work_item_type,
            'url': created.get('url', ''),
            'message': f'Successfully created {work_item_type} {created.get("id")}',
        }
    )


@group.tool(
    name='create_work_item',
    description='Create a new work item of any type',
    args=CreateWorkItemArgs,
)
async def create_work_item(client: AdoClient, params: CreateWorkItemArgs) -> Dict[str, Any]:
    return await create_typed_work_item(client, params.type, params)


class UpdateWorkItemArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    title: Optional[str] = Field(None, description='New title')
    description: Optional[str] = Field(None, description='New description')
    state: Optional[str] = Field(None, description='New state')
    assigned_to: Optional[str] = Field(None, description='New assignee (email or display name)')
    area_path: Optional[str] = Field(None, description='New area path')
    iteration_path: Optional[str] = Field(None, description='New iteration path')
    tags: Optional[List[str]] = Field(None, description='New tags (replaces existing)')
    priority: Optional[int] = Field(None, ge=1, le=4, description='New priority (1-4)')
    additional_fields: Optional[Dict[str, Any]] = Field(
        None, description='Additional field reference names and values'
    )


@group.tool(
    name='update_work_item',
    description='Update fields of an existing work item',
    args=UpdateWorkItemArgs,
)
async def update_work_item(client: AdoClient, params: UpdateWorkItemArgs) -> Dict[str, Any]:
    operations = field_operations(
        {
            'title': params.title,
            'description': params.description,
            'state': params.state,
            'assigned_to': params.assigned_to,
            'area_path': params.area_path,
            'iteration_path': params.iteration_path,
            'tags': params.tags,
            'priority': params.priority,
        },
        params.additional_fields,
    )
    if not operations:
        raise ValueError('No fields to update')

    updated = await client.patch_work_item(f'_apis/wit/workitems/{params.id}', operations)
    fields = updated.get('fields', {})
    return compact(
        {
            'id': updated.get('id', params.id),
            'rev': updated.get('rev'),
            'title': fields.get('System.Title'),
            'state': fields.get('System.State'),
            'url': updated.get('url', ''),
            'message': f'Successfully updated work item {params.id}',
        }
    )


class DeleteWorkItemArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    permanent: bool = Field(False, description='Permanently destroy instead of moving to the recycle bin')


@group.tool(
    name='delete_work_item',
    description='Delete a work item (recycle bin by default)',
    args=DeleteWorkItemArgs,
)
async def delete_work_item(client: AdoClient, params: DeleteWorkItemArgs) -> Dict[str, Any]:
    await client.delete(
        f'_apis/wit/workitems/{params.id}',
        params={'destroy': 'true' if params.permanent else None},
    )
    action = 'permanently deleted' if params.permanent else 'moved to the recycle bin'
    return {
        'id': params.id,
        'deleted': True,
        'permanent': params.permanent,
        'message': f'Work item {params.id} {action}',
    }


class AddWorkItemCommentArgs(BaseModel):
    id: int = Field(..., ge=1, description='Work item ID')
    text: str = Field(..., min_length=1, description='Comment text (HTML supported)')


@group.tool(
    name='add_work_item_comment',
    description='Add a comment to a work item',
    args=AddWorkItemCommentArgs,
)
async def add_work_item_comment(
    client: AdoClient, params: AddWorkItemCommentArgs
) -> Dict[str, Any]:
    work_item = await client.get(
        f'_apis/wit/workitems/{params.id}', params={'fields': 'System.TeamProject'}
    )
    project = (work_item or {}).get('fields', {}).get('System.TeamProject')
    if not project:
        raise ValueError(f'Work item {params.id} not found')

    comment = await client.post(
        f'{segment(project)}/_apis/wit/workItems/{params.id}/comments',
        {'text': params.text},
        api_version=COMMENTS_API_VERSION,
    )
    return compact(
        {
            'id': comment.get('id'),
            'work_item_id': params.id,
            'text': format_description(comment.get('text')) or '',
            'created_by': display_name(comment.get('createdBy')),
            'created_date': iso_date(comment.get('createdDate')),
        }
    )


class SearchWorkItemsArgs(ProjectArgs):
    search_text: str = Field(..., min_length=1, description='Text to find in title or description')
    work_item_types: Optional[List[str]] = Field(None, description='Filter by work item types')
    states: Optional[List[str]] = Field(None, description='Filter by states')
    assigned_to: Optional[str] = Field(None, description='Filter by assignee')
    max_results: int = Field(50, ge=1, le=1000, description='Maximum number of results')


@group.tool(
    name='search_work_items',
    description='Search work items by text in title and description',
    args=SearchWorkItemsArgs,
)
async def search_work_items(client: AdoClient, params: SearchWorkItemsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    text = escape_wiql(params.search_text)

    conditions = [
        f"[System.TeamProject] = '{escape_wiql(project)}'",
        f"([System.Title] CONTAINS '{text}' OR [System.Description] CONTAINS '{text}')",
    ]
    if params.work_item_types:
        conditions.append(f'[System.WorkItemType] IN ({wiql_list(params.work_item_types)})')
    if params.states:
        conditions.append(f'[System.State] IN ({wiql_list(params.states)})')
    if params.assigned_to:
        conditions.append(f"[System.AssignedTo] CONTAINS '{escape_wiql(params.assigned_to)}'")

    query = (
        'SELECT [System.Id] FROM WorkItems WHERE '
        + ' AND '.join(conditions)
        + ' ORDER BY [System.ChangedDate] DESC'
    )
    ids = await run_wiql(client, project, query, top=params.max_results)
    if not ids:
        return []
    return await summaries_for_ids(client, ids[: params.max_results], project)


ValueArea = Literal['Business', 'Architectural']
Severity = Literal['1 - Critical', '2 - High', '3 - Medium', '4 - Low']


class CreateBugArgs(NewWorkItemArgs):
    parent_id: Optional[int] = Field(None, ge=1, description='Parent User Story ID')
    repro_steps: Optional[str] = Field(None, description='Steps to reproduce (HTML supported)')
    system_info: Optional[str] = Field(None, description='System information where the bug was found')
    severity: Optional[Severity] = Field(None, description='Bug severity')
    found_in: Optional[str] = Field(None, description='Build version where the bug was found')


class CreateUserStoryArgs(ChildWorkItemArgs):
    acceptance_criteria: Optional[str] = Field(None, description='Acceptance criteria (HTML supported)')
    story_points: Optional[float] = Field(None, ge=0, description='Story points estimate')
    value_area: Optional[ValueArea] = Field(None, description='Business or Architectural')


class CreateTaskArgs(ChildWorkItemArgs):
    original_estimate: Optional[float] = Field(None, ge=0, description='Original estimate in hours')
    remaining_work: Optional[float] = Field(None, ge=0, description='Remaining work in hours')
    activity: Optional[str] = Field(
        None, description='Activity, e.g. Development, Testing, Design, Documentation'
    )


class CreateFeatureArgs(ChildWorkItemArgs):
    target_date: Optional[str] = Field(None, description='Target completion date (ISO 8601)')
    value_area: Optional[ValueArea] = Field(None, description='Business or Architectural')


class CreateEpicArgs(DescribedWorkItemArgs):
    start_date: Optional[str] = Field(None, description='Planned start date (ISO 8601)')
    target_date: Optional[str] = Field(None, description='Target completion date (ISO 8601)')
    value_area: Optional[ValueArea] = Field(None, description='Business or Architectural')


def register_typed_create(
    name: str, work_item_type: str, args: Type[NewWorkItemArgs], attributes: List[str], description: str
) -> None:
    """Register a create tool that sets the given type specific fields."""
    reference_names = {
        attribute: TYPE_DETAIL_FIELDS[work_item_type][attribute] for attribute in attributes
    }

    async def create(client: AdoClient, params: NewWorkItemArgs) -> Dict[str, Any]:
        type_fields = {
            reference_name: getattr(params, attribute)
            for attribute, reference_name in reference_names.items()
        }
        return await create_typed_work_item(client, work_item_type, params, type_fields)

    group.tool(name=name, description=description, args=args)(create)


def register_typed_get(name: str, work_item_type: str, description: str) -> None:
    async def get(client: AdoClient, params: GetWorkItemArgs) -> Dict[str, Any]:
        return await work_item_details(client, params, expected_type=work_item_type)

    group.tool(name=name, description=description, args=GetWorkItemArgs)(get)


class ListTypedWorkItemsArgs(ProjectArgs):
    states: Optional[List[str]] = Field(
        None, description='Filter by states (defaults to New, Active, Resolved and Closed)'
    )
    assigned_to: Optional[str] = Field(None, description='Filter by assignee (display name or email)')
    area_path: Optional[str] = Field(None, description='Filter by area path (includes children)')
    iteration_path: Optional[str] = Field(None, description='Filter by iteration path (includes children)')
    tags: Optional[List[str]] = Field(None, description='Work items must carry all of these tags')
    max_results: int = Field(200, ge=1, le=20000, description='Maximum number of results')


class ListTypedWorkItemsWithActivationArgs(ListTypedWorkItemsArgs):
    include_activated_date: bool = Field(
        False, description='Include activation date and cycle time (one extra call per item)'
    )


def register_typed_list(
    name: str, work_item_type: str, args: Type[ListTypedWorkItemsArgs], description: str
) -> None:
    async def list_typed(client: AdoClient, params: ListTypedWorkItemsArgs) -> List[Dict[str, Any]]:
        query = QueryWorkItemsArgs(
            project=params.project,
            work_item_types=[work_item_type],
            states=params.states or DEFAULT_TYPED_STATES,
            assigned_to=params.assigned_to,
            area_path=params.area_path,
            iteration_path=params.iteration_path,
            tags=params.tags,
            max_results=params.max_results,
            include_activated_date=getattr(params, 'include_activated_date', False),
        )
        return await query_work_items(client, query)

    group.tool(name=name, description=description, args=args)(list_typed)


register_typed_create(
    'create_bug',
    'Bug',
    CreateBugArgs,
    ['repro_steps', 'system_info', 'severity', 'found_in'],
    'Create a Bug with repro steps, system info, severity and found-in build',
)
register_typed_create(
    'create_task',
    'Task',
    CreateTaskArgs,
    ['original_estimate', 'remaining_work', 'activity'],
    'Create a Task with work estimates and activity, usually under a User Story',
)
register_typed_create(
    'create_user_story',
    'User Story',
    CreateUserStoryArgs,
    ['acceptance_criteria', 'story_points', 'value_area'],
    'Create a User Story with acceptance criteria and story points, usually under a Feature',
)
register_typed_create(
    'create_feature',
    'Feature',
    CreateFeatureArgs,
    ['target_date', 'value_area'],
    'Create a Feature with a target date, usually under an Epic',
)
register_typed_create(
    'create_epic',
    'Epic',
    CreateEpicArgs,
    ['start_date', 'target_date', 'value_area'],
    'Create an Epic, the top level work item for large initiatives',
)

register_typed_get('get_bug', 'Bug', 'Get a Bug with repro steps, system info and severity')
register_typed_get('get_task', 'Task', 'Get a Task with its estimates, completed work and activity')
register_typed_get(
    'get_user_story', 'User Story', 'Get a User Story with acceptance criteria and story points'
)
register_typed_get('get_feature', 'Feature', 'Get a Feature with its value area and dates')
register_typed_get('get_epic', 'Epic', 'Get an Epic with its value area and dates')

register_typed_list(
    'list_bugs', 'Bug', ListTypedWorkItemsArgs, 'List Bugs, all non-removed states by default'
)
register_typed_list(
    'list_user_stories',
    'User Story',
    ListTypedWorkItemsWithActivationArgs,
    'List User Stories, all non-removed states by default',
)
register_typed_list(
    'list_epics',
    'Epic',
    ListTypedWorkItemsWithActivationArgs,
    'List Epics, all non-removed states by default',
)
