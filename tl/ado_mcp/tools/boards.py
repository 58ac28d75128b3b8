"""Kanban board tools."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import TeamArgs, compact, display_name, segment, team_path, values
from tl.ado_mcp.tools.work_items import escape_wiql, get_work_items_batch, run_wiql
from typing import Any, Dict, List, Optional


group = ToolGroup('boards')

BOARD_ITEM_LIMIT = 200
BOARD_FIELDS = [
    'System.Id',
    'System.Title',
    'System.State',
    'System.WorkItemType',
    'System.AssignedTo',
    'System.BoardColumn',
    'System.BoardLane',
]


class BoardArgs(TeamArgs):
    board: str = Field(..., min_length=1, description='Board name or ID, e.g. Stories')


@group.tool(
    name='get_boards',
    description='List the Kanban boards of a team',
    args=TeamArgs,
)
async def get_boards(client: AdoClient, params: TeamArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(f'{team_path(project, params.team)}/_apis/work/boards')
    return [
        {'id': board.get('id', ''), 'name': board.get('name', ''), 'url': board.get('url', '')}
        for board in values(payload)
    ]


@group.tool(
    name='get_board_columns',
    description='Get the columns of a board with their WIP limits and state mappings',
    args=BoardArgs,
)
async def get_board_columns(client: AdoClient, params: BoardArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{team_path(project, params.team)}/_apis/work/boards/{segment(params.board)}/columns'
    )
    return [
        {
            'id': column.get('id', ''),
            'name': column.get('name', ''),
            'item_limit': column.get('itemLimit', 0),
            'is_split': column.get('isSplit', False),
            'column_type': column.get('columnType'),
            'state_mappings': column.get('stateMappings') or {},
        }
        for column in values(payload)
    ]


@group.tool(
    name='get_board_swimlanes',
    description='Get the swimlanes (rows) of a board',
    args=BoardArgs,
)
async def get_board_swimlanes(client: AdoClient, params: BoardArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{team_path(project, params.team)}/_apis/work/boards/{segment(params.board)}/rows'
    )
    return [
        {'id': row.get('id', ''), 'name': row.get('name') or 'Default lane'}
        for row in values(payload)
    ]


class BoardItemsArgs(BoardArgs):
    column: Optional[str] = Field(None, description='Only items in this column')
    swimlane: Optional[str] = Field(None, description='Only items in this swimlane')


@group.tool(
    name='get_board_items',
    description='List work items on a board, optionally filtered by column or swimlane',
    args=BoardItemsArgs,
)
async def get_board_items(client: AdoClient, params: BoardItemsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    prefix = team_path(project, params.team)

    board = await client.get(f'{prefix}/_apis/work/boards/{segment(params.board)}')
    if not board:
        raise ValueError(f'Board {params.board} not found')

    query = f"SELECT [System.Id] FROM WorkItems WHERE [System.TeamProject] = '{escape_wiql(project)}'"
    if params.column:
        query += f" AND [System.BoardColumn] = '{escape_wiql(params.column)}'"
    if params.swimlane:
        query += f" AND [System.BoardLane] = '{escape_wiql(params.swimlane)}'"
    query += ' ORDER BY [System.Id]'

    ids = (await run_wiql(client, project, query))[:BOARD_ITEM_LIMIT]
    if not ids:
        return []

    work_items = await get_work_items_batch(client, ids, fields=BOARD_FIELDS)
    return [
        compact(
            {
                'id': item.get('id'),
                'title': item['fields'].get('System.Title', ''),
                'state': item['fields'].get('System.State', ''),
                'type': item['fields'].get('System.WorkItemType', ''),
                'assigned_to': display_name(item['fields'].get('System.AssignedTo')),
                'column': item['fields'].get('System.BoardColumn'),
                'swimlane': item['fields'].get('System.BoardLane'),
                'url': item.get('url', ''),
            }
        )
        for item in work_items
    ]


class MoveBoardCardArgs(BoardArgs):
    id: int = Field(..., ge=1, description='Work item ID')
    column: str = Field(..., min_length=1, description='Target column name')
    swimlane: Optional[str] = Field(None, description='Target swimlane name')


@group.tool(
    name='move_board_card',
    description='Move a work item card to another board column (and optionally swimlane)',
    args=MoveBoardCardArgs,
)
async def move_board_card(client: AdoClient, params: MoveBoardCardArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    columns = values(
        await client.get(
            f'{team_path(project, params.team)}/_apis/work/boards/{segment(params.board)}/columns'
        )
    )
    target = next(
        (c for c in columns if (c.get('name') or '').lower() == params.column.lower()), None
    )
    if target is None:
        raise ValueError(f'Column {params.column} not found on board {params.board}')

    operations = [{'op': 'add', 'path': '/fields/System.BoardColumn', 'value': target['name']}]
    states = list((target.get('stateMappings') or {}).values())
    if states:
        operations.append({'op': 'add', 'path': '/fields/System.State', 'value': states[0]})
    if params.swimlane:
        operations.append({'op': 'add', 'path': '/fields/System.BoardLane', 'value': params.swimlane})

    updated = await client.patch_work_item(
        f'{segment(project)}/_apis/wit/workitems/{params.id}', operations
    )
    return compact(
        {
            'success': True,
            'id': params.id,
            'column': target['name'],
            'swimlane': params.swimlane,
            'state': updated.get('fields', {}).get('System.State'),
            'rev': updated.get('rev'),
            'message': f'Successfully moved work item {params.id} to column {target["name"]}',
        }
    )
