"""Build definition and build tools (classic build API)."""

import json
import logfire
from loguru import logger
from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.errors import AdoApiError
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    compact,
    display_name,
    iso_date,
    ref_name,
    segment,
    short_ref,
    values,
    web_url,
)
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('builds')

BuildStatus = Literal['inProgress', 'completed', 'cancelling', 'postponed', 'notStarted', 'all']
BuildResult = Literal['succeeded', 'partiallySucceeded', 'failed', 'canceled']


def builds_path(project: str) -> str:
    return f'{segment(project)}/_apis/build/builds'


def build_summary(build: Dict[str, Any]) -> Dict[str, Any]:
    definition = build.get('definition') or {}
    return compact(
        {
            'id': build.get('id'),
            'build_number': build.get('buildNumber', ''),
            'status': build.get('status', 'unknown'),
            'result': build.get('result'),
            'definition': compact({'id': definition.get('id'), 'name': definition.get('name')}),
            'source_branch': short_ref(build.get('sourceBranch')),
            'source_version': build.get('sourceVersion'),
            'queue_time': iso_date(build.get('queueTime')),
            'start_time': iso_date(build.get('startTime')),
            'finish_time': iso_date(build.get('finishTime')),
            'reason': build.get('reason'),
            'requested_by': display_name(build.get('requestedBy')),
            'requested_for': display_name(build.get('requestedFor')),
            'url': build.get('url', ''),
            'web_url': web_url(build),
        }
    )


async def get_timeline(client: AdoClient, project: str, build_id: int) -> List[Dict[str, Any]]:
    timeline = await client.get(f'{builds_path(project)}/{build_id}/timeline')
    return [
        compact(
            {
                'id': record.get('id', ''),
                'parent_id': record.get('parentId'),
                'name': record.get('name', ''),
                'type': record.get('type', ''),
                'state': record.get('state'),
                'result': record.get('result'),
                'start_time': iso_date(record.get('startTime')),
                'finish_time': iso_date(record.get('finishTime')),
                'log_id': (record.get('log') or {}).get('id'),
                'error_count': record.get('errorCount') or None,
            }
        )
        for record in (timeline or {}).get('records') or []
    ]


async def list_logs(client: AdoClient, project: str, build_id: int) -> List[Dict[str, Any]]:
    payload = await client.get(f'{builds_path(project)}/{build_id}/logs')
    return [
        compact(
            {
                'id': log.get('id'),
                'type': log.get('type'),
                'line_count': log.get('lineCount', 0),
                'created_on': iso_date(log.get('createdOn')),
                'last_changed_on': iso_date(log.get('lastChangedOn')),
                'url': log.get('url', ''),
            }
        )
        for log in values(payload)
    ]


async def get_logs(
    client: AdoClient, project: str, build_id: int, log_id: Optional[int] = None
) -> Dict[str, Any]:
    """Log content of a build: one log when ``log_id`` is given, otherwise all of them.

    A log whose content cannot be read is reported with its error instead of
    failing the whole request.
    """
    logs_info: Dict[str, Any] = {'run_id': build_id, 'logs': [], 'total_logs': 0}

    if log_id is not None:
        content = await client.get_text(f'{builds_path(project)}/{build_id}/logs/{log_id}')
        logs_info['logs'] = [{'id': log_id, 'content': content, 'size': len(content)}]
        logs_info['total_logs'] = 1
        return logs_info

    entries = await list_logs(client, project, build_id)
    logs_info['total_logs'] = len(entries)
    for entry in entries:
        try:
            content = await client.get_text(f'{builds_path(project)}/{build_id}/logs/{entry["id"]}')
            entry.update({'content': content, 'size': len(content)})
        except AdoApiError as e:
            logger.warning(f'Failed to get content for log {entry.get("id")}: {str(e)}')
            entry.update({'content': f'Error retrieving log content: {str(e)}', 'size': 0})
        logs_info['logs'].append(entry)
    return logs_info


async def cancel(client: AdoClient, project: str, build_id: int) -> Dict[str, Any]:
    build = await client.patch(f'{builds_path(project)}/{build_id}', {'status': 'cancelling'})
    return {
        'id': build_id,
        'status': (build or {}).get('status', 'cancelling'),
        'message': f'Cancellation requested for run {build_id}',
    }


class ListBuildDefinitionsArgs(ProjectArgs):
    path: Optional[str] = Field(None, description='Filter by folder path')
    name: Optional[str] = Field(None, description='Filter by name (supports * wildcards)')


@group.tool(
    name='list_build_definitions',
    description='List build definitions in a project',
    args=ListBuildDefinitionsArgs,
)
async def list_build_definitions(
    client: AdoClient, params: ListBuildDefinitionsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{segment(project)}/_apis/build/definitions',
        params={'path': params.path, 'name': params.name},
    )
    return [
        compact(
            {
                'id': definition.get('id'),
                'name': definition.get('name', ''),
                'path': definition.get('path', ''),
                'type': definition.get('type'),
                'queue_status': definition.get('queueStatus'),
                'revision': definition.get('revision'),
                'url': definition.get('url', ''),
            }
        )
        for definition in values(payload)
    ]


class ListBuildsArgs(ProjectArgs):
    definition_id: Optional[int] = Field(None, ge=1, description='Filter by build definition')
    branch: Optional[str] = Field(None, description='Filter by branch')
    status: Optional[BuildStatus] = Field(None, description='Filter by status')
    result: Optional[BuildResult] = Field(None, description='Filter by result')
    requested_for: Optional[str] = Field(None, description='Filter by requester')
    max_results: int = Field(50, ge=1, le=10000, description='Maximum number of builds')


@group.tool(
    name='list_builds',
    description='List builds in a project, newest first',
    args=ListBuildsArgs,
)
async def list_builds(client: AdoClient, params: ListBuildsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    query = {
        'definitions': params.definition_id,
        'branchName': ref_name(params.branch) if params.branch else None,
        'statusFilter': params.status,
        'resultFilter': params.result,
        'requestedFor': params.requested_for,
        '$top': params.max_results,
        'queryOrder': 'queueTimeDescending',
    }
    payload = await client.get(builds_path(project), params=query)
    return [build_summary(build) for build in values(payload)]


class BuildArgs(ProjectArgs):
    build_id: int = Field(..., ge=1, description='Build ID')


@group.tool(
    name='get_build',
    description='Get a build with its timeline of stages, jobs and tasks',
    args=BuildArgs,
)
async def get_build(client: AdoClient, params: BuildArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    build = await client.get(f'{builds_path(project)}/{params.build_id}')
    if not build:
        raise ValueError(f'Build {params.build_id} not found')
    result = build_summary(build)
    repository = build.get('repository')
    if repository:
        result['repository'] = compact(
            {'id': repository.get('id'), 'name': repository.get('name'), 'type': repository.get('type')}
        )
    result['timeline'] = await get_timeline(client, project, params.build_id)
    return result


class QueueBuildArgs(ProjectArgs):
    definition_id: int = Field(..., ge=1, description='Build definition ID')
    branch: Optional[str] = Field(None, description='Branch to build')
    parameters: Optional[Dict[str, str]] = Field(None, description='Build variables')


@group.tool(
    name='queue_build',
    description='Queue a new build of a build definition',
    args=QueueBuildArgs,
)
async def queue_build(client: AdoClient, params: QueueBuildArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    request_body: Dict[str, Any] = {'definition': {'id': params.definition_id}}
    if params.branch:
        request_body['sourceBranch'] = ref_name(params.branch)
    if params.parameters:
        # The build API expects variables as a JSON encoded string
        request_body['parameters'] = json.dumps(params.parameters)

    build = await client.post(builds_path(project), request_body)

    logger.info(f'Queued build {build.get("buildNumber")} of definition {params.definition_id}')
    logfire.info(
        'Queued Azure DevOps build',
        project_name=project,
        definition_id=params.definition_id,
        build_id=build.get('id'),
    )
    result = build_summary(build)
    result['message'] = f'Successfully queued build {build.get("buildNumber", "")}'
    return result


@group.tool(
    name='cancel_build',
    description='Cancel a running build',
    args=BuildArgs,
)
async def cancel_build(client: AdoClient, params: BuildArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    return await cancel(client, project, params.build_id)


class BuildLogsArgs(BuildArgs):
    log_id: Optional[int] = Field(None, ge=1, description='Specific log ID (all logs when omitted)')


@group.tool(
    name='get_build_logs',
    description='Get the logs of a build',
    args=BuildLogsArgs,
)
async def get_build_logs(client: AdoClient, params: BuildLogsArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    return await get_logs(client, project, params.build_id, params.log_id)
