"""YAML pipeline tools (pipelines API).

Pipeline runs share their IDs with builds, so run details, timelines, logs and
cancellation go through the build API helpers.
"""

import logfire
from loguru import logger
from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools import builds
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    compact,
    iso_date,
    ref_name,
    segment,
    short_ref,
    values,
    web_url,
)
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('pipelines')


def pipelines_path(project: str) -> str:
    return f'{segment(project)}/_apis/pipelines'


def run_summary(run: Dict[str, Any]) -> Dict[str, Any]:
    repository = (run.get('resources') or {}).get('repositories', {}).get('self', {})
    return compact(
        {
            'id': run.get('id'),
            'name': run.get('name', ''),
            'state': run.get('state', 'unknown'),
            'result': run.get('result'),
            'pipeline': compact(
                {
                    'id': run.get('pipeline', {}).get('id'),
                    'name': run.get('pipeline', {}).get('name'),
                }
            ),
            'source_branch': short_ref(repository.get('refName')),
            'source_version': repository.get('version'),
            'created_date': iso_date(run.get('createdDate')),
            'finished_date': iso_date(run.get('finishedDate')),
            'url': run.get('url', ''),
            'web_url': web_url(run),
        }
    )


class ListPipelinesArgs(ProjectArgs):
    folder: Optional[str] = Field(None, description='Only pipelines in this folder')


@group.tool(
    name='list_pipelines',
    description='List all pipelines in an Azure DevOps project',
    args=ListPipelinesArgs,
)
async def list_pipelines(client: AdoClient, params: ListPipelinesArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(pipelines_path(project), params={'orderBy': 'name asc'})
    pipelines = [
        compact(
            {
                'id': pipeline.get('id'),
                'name': pipeline.get('name', ''),
                'folder': pipeline.get('folder', '\\'),
                'revision': pipeline.get('revision'),
                'url': pipeline.get('url', ''),
                'web_url': web_url(pipeline),
            }
        )
        for pipeline in values(payload)
    ]
    if params.folder:
        folder = params.folder.replace('/', '\\').rstrip('\\').lower()
        pipelines = [
            p for p in pipelines if p.get('folder', '').rstrip('\\').lower().startswith(folder)
        ]
    return pipelines


class PipelineArgs(ProjectArgs):
    pipeline_id: int = Field(..., ge=1, description='Pipeline ID')


@group.tool(
    name='get_pipeline',
    description='Get a pipeline and its configuration',
    args=PipelineArgs,
)
async def get_pipeline(client: AdoClient, params: PipelineArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    pipeline = await client.get(f'{pipelines_path(project)}/{params.pipeline_id}')
    if not pipeline:
        raise ValueError(f'Pipeline {params.pipeline_id} not found')
    configuration = pipeline.get('configuration') or {}
    return compact(
        {
            'id': pipeline.get('id'),
            'name': pipeline.get('name', ''),
            'folder': pipeline.get('folder', '\\'),
            'revision': pipeline.get('revision'),
            'configuration_type': configuration.get('type'),
            'yaml_path': configuration.get('path'),
            'repository': (configuration.get('repository') or {}).get('fullName')
            or (configuration.get('repository') or {}).get('id'),
            'url': pipeline.get('url', ''),
            'web_url': web_url(pipeline),
        }
    )


class RunPipelineArgs(PipelineArgs):
    branch: Optional[str] = Field(None, description='Branch to run on')
    variables: Optional[Dict[str, str]] = Field(None, description='Runtime variables to set')
    parameters: Optional[Dict[str, str]] = Field(None, description='Template parameters')
    stages_to_skip: Optional[List[str]] = Field(None, description='Stages to skip')


@group.tool(
    name='run_pipeline',
    description='Run a pipeline, optionally on a branch with variables and parameters',
    args=RunPipelineArgs,
)
async def run_pipeline(client: AdoClient, params: RunPipelineArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)

    request_body: Dict[str, Any] = {}
    if params.branch:
        request_body['resources'] = {
            'repositories': {'self': {'refName': ref_name(params.branch)}}
        }
    if params.variables:
        request_body['variables'] = {
            name: {'value': value} for name, value in params.variables.items()
        }
    if params.parameters:
        request_body['templateParameters'] = params.parameters
    if params.stages_to_skip:
        request_body['stagesToSkip'] = params.stages_to_skip

    run = await client.post(f'{pipelines_path(project)}/{params.pipeline_id}/runs', request_body)

    logger.info(f'Started run {run.get("id")} of pipeline {params.pipeline_id} in project {project}')
    logfire.info(
        'Triggered Azure DevOps pipeline',
        project_name=project,
        pipeline_id=params.pipeline_id,
        run_id=run.get('id'),
    )
    result = run_summary(run)
    result['message'] = f'Successfully queued pipeline run {run.get("name", run.get("id"))}'
    return result


class ListPipelineRunsArgs(PipelineArgs):
    branch: Optional[str] = Field(None, description='Filter by branch')
    state: Optional[Literal['inProgress', 'completed', 'canceling', 'unknown']] = Field(
        None, description='Filter by state'
    )
    result: Optional[Literal['succeeded', 'failed', 'canceled']] = Field(
        None, description='Filter by result'
    )
    max_results: int = Field(50, ge=1, le=10000, description='Maximum number of runs')


@group.tool(
    name='list_pipeline_runs',
    description='List recent runs of a pipeline',
    args=ListPipelineRunsArgs,
)
async def list_pipeline_runs(
    client: AdoClient, params: ListPipelineRunsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(f'{pipelines_path(project)}/{params.pipeline_id}/runs')
    runs = [run_summary(run) for run in values(payload)]
    if params.branch:
        runs = [r for r in runs if r.get('source_branch') == short_ref(params.branch)]
    if params.state:
        runs = [r for r in runs if r.get('state') == params.state]
    if params.result:
        runs = [r for r in runs if r.get('result') == params.result]
    return runs[: params.max_results]


class PipelineRunArgs(PipelineArgs):
    run_id: int = Field(..., ge=1, description='Run ID')


class GetPipelineRunArgs(PipelineRunArgs):
    include_logs: bool = Field(False, description='Include log references')


@group.tool(
    name='get_pipeline_run',
    description='Get a pipeline run with its stage, job and task timeline',
    args=GetPipelineRunArgs,
)
async def get_pipeline_run(client: AdoClient, params: GetPipelineRunArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    build = await client.get(f'{builds.builds_path(project)}/{params.run_id}')
    if not build:
        raise ValueError(f'Pipeline run {params.run_id} not found')

    result = builds.build_summary(build)
    result['timeline'] = await builds.get_timeline(client, project, params.run_id)
    if params.include_logs:
        result['logs'] = await builds.list_logs(client, project, params.run_id)
    return result


@group.tool(
    name='cancel_pipeline_run',
    description='Cancel a running pipeline run',
    args=PipelineRunArgs,
)
async def cancel_pipeline_run(client: AdoClient, params: PipelineRunArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    return await builds.cancel(client, project, params.run_id)


class PipelineLogsArgs(PipelineRunArgs):
    log_id: Optional[int] = Field(None, ge=1, description='Specific log ID (from the run details)')


@group.tool(
    name='get_pipeline_logs',
    description='Get the logs of a pipeline run',
    args=PipelineLogsArgs,
)
async def get_pipeline_logs(client: AdoClient, params: PipelineLogsArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    return await builds.get_logs(client, project, params.run_id, params.log_id)
