"""Classic release management tools.

Release management lives on its own host (``vsrm.dev.azure.com``).
"""

import logfire
from loguru import logger
from pydantic import BaseModel, Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    compact,
    display_name,
    iso_date,
    segment,
    values,
    web_url,
)
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('releases')

HOST = 'vsrm'

EnvironmentStatus = Literal[
    'notStarted',
    'inProgress',
    'succeeded',
    'canceled',
    'rejected',
    'queued',
    'scheduled',
    'partiallySucceeded',
]

# Bit flags of the environmentStatusFilter query parameter
ENVIRONMENT_STATUS_FLAGS = {
    'notStarted': 1,
    'inProgress': 2,
    'succeeded': 4,
    'canceled': 8,
    'rejected': 16,
    'queued': 32,
    'scheduled': 64,
    'partiallySucceeded': 128,
}


def release_path(project: str) -> str:
    return f'{segment(project)}/_apis/release'


def environment_info(environment: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': environment.get('id'),
            'name': environment.get('name', ''),
            'status': environment.get('status', 'undefined'),
            'rank': environment.get('rank'),
            'definition_environment_id': environment.get('definitionEnvironmentId'),
        }
    )


def release_summary(release: Dict[str, Any]) -> Dict[str, Any]:
    definition = release.get('releaseDefinition') or {}
    return compact(
        {
            'id': release.get('id'),
            'name': release.get('name', ''),
            'status': release.get('status', 'undefined'),
            'definition': compact({'id': definition.get('id'), 'name': definition.get('name')}),
            'description': release.get('description') or None,
            'created_by': display_name(release.get('createdBy')),
            'created_on': iso_date(release.get('createdOn')),
            'environments': [environment_info(e) for e in release.get('environments') or []] or None,
            'url': release.get('url', ''),
            'web_url': web_url(release),
        }
    )


class ListReleaseDefinitionsArgs(ProjectArgs):
    search_text: Optional[str] = Field(None, description='Filter by name')
    path: Optional[str] = Field(None, description='Filter by folder path')


@group.tool(
    name='list_release_definitions',
    description='List release definitions in a project',
    args=ListReleaseDefinitionsArgs,
)
async def list_release_definitions(
    client: AdoClient, params: ListReleaseDefinitionsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{release_path(project)}/definitions',
        host=HOST,
        params={'searchText': params.search_text, 'path': params.path, '$expand': 'environments'},
    )
    return [
        compact(
            {
                'id': definition.get('id'),
                'name': definition.get('name', ''),
                'path': definition.get('path', ''),
                'revision': definition.get('revision'),
                'created_on': iso_date(definition.get('createdOn')),
                'modified_on': iso_date(definition.get('modifiedOn')),
                'environments': [
                    {'id': env.get('id'), 'name': env.get('name', ''), 'rank': env.get('rank', 0)}
                    for env in definition.get('environments') or []
                ],
                'url': definition.get('url', ''),
            }
        )
        for definition in values(payload)
    ]


class ReleaseDefinitionArgs(ProjectArgs):
    definition_id: int = Field(..., ge=1, description='Release definition ID')


@group.tool(
    name='get_release_definition',
    description='Get a release definition with its environments and artifacts',
    args=ReleaseDefinitionArgs,
)
async def get_release_definition(
    client: AdoClient, params: ReleaseDefinitionArgs
) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    definition = await client.get(
        f'{release_path(project)}/definitions/{params.definition_id}', host=HOST
    )
    if not definition:
        raise ValueError(f'Release definition {params.definition_id} not found')
    return compact(
        {
            'id': definition.get('id'),
            'name': definition.get('name', ''),
            'path': definition.get('path', ''),
            'description': definition.get('description') or None,
            'revision': definition.get('revision'),
            'release_name_format': definition.get('releaseNameFormat'),
            'created_by': display_name(definition.get('createdBy')),
            'created_on': iso_date(definition.get('createdOn')),
            'modified_by': display_name(definition.get('modifiedBy')),
            'modified_on': iso_date(definition.get('modifiedOn')),
            'environments': [
                {'id': env.get('id'), 'name': env.get('name', ''), 'rank': env.get('rank', 0)}
                for env in definition.get('environments') or []
            ],
            'artifacts': [
                compact(
                    {
                        'alias': artifact.get('alias', ''),
                        'type': artifact.get('type', ''),
                        'is_primary': artifact.get('isPrimary', False),
                        'source_id': artifact.get('sourceId'),
                    }
                )
                for artifact in definition.get('artifacts') or []
            ],
            'variables': {
                name: ('***' if value.get('isSecret') else value.get('value'))
                for name, value in (definition.get('variables') or {}).items()
            },
            'url': definition.get('url', ''),
        }
    )


class ListReleasesArgs(ProjectArgs):
    definition_id: Optional[int] = Field(None, ge=1, description='Filter by release definition')
    status: Optional[Literal['draft', 'active', 'abandoned']] = Field(None, description='Filter by status')
    environment_status: Optional[EnvironmentStatus] = Field(
        None, description='Filter by environment status'
    )
    max_results: int = Field(50, ge=1, le=1000, description='Maximum number of releases')


@group.tool(
    name='list_releases',
    description='List releases in a project, newest first',
    args=ListReleasesArgs,
)
async def list_releases(client: AdoClient, params: ListReleasesArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    query = {
        'definitionId': params.definition_id,
        'statusFilter': params.status,
        'environmentStatusFilter': ENVIRONMENT_STATUS_FLAGS.get(params.environment_status)
        if params.environment_status
        else None,
        '$top': params.max_results,
        '$expand': 'environments',
    }
    payload = await client.get(f'{release_path(project)}/releases', host=HOST, params=query)
    return [release_summary(release) for release in values(payload)]


class ReleaseArgs(ProjectArgs):
    release_id: int = Field(..., ge=1, description='Release ID')


@group.tool(
    name='get_release',
    description='Get a release with its environments and artifacts',
    args=ReleaseArgs,
)
async def get_release(client: AdoClient, params: ReleaseArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    release = await client.get(f'{release_path(project)}/releases/{params.release_id}', host=HOST)
    if not release:
        raise ValueError(f'Release {params.release_id} not found')
    result = release_summary(release)
    result['artifacts'] = [
        compact(
            {
                'alias': artifact.get('alias', ''),
                'type': artifact.get('type', ''),
                'version': (artifact.get('definitionReference') or {}).get('version', {}).get('name'),
            }
        )
        for artifact in release.get('artifacts') or []
    ]
    return result


class ArtifactVersion(BaseModel):
    alias: str = Field(..., min_length=1, description='Artifact alias')
    version: str = Field(..., min_length=1, description='Artifact version (build ID)')


class CreateReleaseArgs(ReleaseDefinitionArgs):
    description: Optional[str] = Field(None, description='Release description')
    artifacts: Optional[List[ArtifactVersion]] = Field(
        None, description='Artifact versions (latest when omitted)'
    )
    is_draft: bool = Field(False, description='Create as a draft')
    variables: Optional[Dict[str, str]] = Field(None, description='Release variables')


@group.tool(
    name='create_release',
    description='Create a release from a release definition',
    args=CreateReleaseArgs,
)
async def create_release(client: AdoClient, params: CreateReleaseArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    request_body: Dict[str, Any] = {
        'definitionId': params.definition_id,
        'description': params.description or 'Release triggered via MCP server',
        'isDraft': params.is_draft,
    }
    if params.artifacts:
        request_body['artifacts'] = [
            {
                'alias': artifact.alias,
                'instanceReference': {'id': artifact.version, 'name': artifact.version},
            }
            for artifact in params.artifacts
        ]
    if params.variables:
        request_body['variables'] = {
            name: {'value': value} for name, value in params.variables.items()
        }

    release = await client.post(f'{release_path(project)}/releases', request_body, host=HOST)

    logger.info(f'Created release {release.get("name")} from definition {params.definition_id}')
    logfire.info(
        'Created Azure DevOps release',
        project_name=project,
        definition_id=params.definition_id,
        release_id=release.get('id'),
    )
    result = release_summary(release)
    result['message'] = f'Successfully created release {release.get("name", "")}'
    return result


class ReleaseEnvironmentArgs(ReleaseArgs):
    environment_id: int = Field(..., ge=1, description='Release environment ID')


@group.tool(
    name='get_release_environment',
    description='Get a release environment with its deployment steps and approvals',
    args=ReleaseEnvironmentArgs,
)
async def get_release_environment(
    client: AdoClient, params: ReleaseEnvironmentArgs
) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    environment = await client.get(
        f'{release_path(project)}/releases/{params.release_id}/environments/{params.environment_id}',
        host=HOST,
    )
    if not environment:
        raise ValueError(
            f'Environment {params.environment_id} not found in release {params.release_id}'
        )
    result = environment_info(environment)
    result.update(
        compact(
            {
                'release_id': params.release_id,
                'created_on': iso_date(environment.get('createdOn')),
                'modified_on': iso_date(environment.get('modifiedOn')),
                'time_to_deploy': environment.get('timeToDeploy'),
                'deploy_steps': [
                    compact(
                        {
                            'id': step.get('id'),
                            'attempt': step.get('attempt'),
                            'status': step.get('status'),
                            'reason': step.get('reason'),
                            'requested_by': display_name(step.get('requestedBy')),
                            'queued_on': iso_date(step.get('queuedOn')),
                        }
                    )
                    for step in environment.get('deploySteps') or []
                ],
                'pending_approvals': [
                    compact(
                        {
                            'id': approval.get('id'),
                            'approval_type': approval.get('approvalType'),
                            'approver': display_name(approval.get('approver')),
                            'status': approval.get('status'),
                        }
                    )
                    for approval in (environment.get('preDeployApprovals') or [])
                    + (environment.get('postDeployApprovals') or [])
                    if approval.get('status') == 'pending'
                ],
            }
        )
    )
    return result


class DeployReleaseArgs(ReleaseEnvironmentArgs):
    comment: Optional[str] = Field(None, description='Deployment comment')


@group.tool(
    name='deploy_release',
    description='Start deployment of a release to an environment',
    args=DeployReleaseArgs,
)
async def deploy_release(client: AdoClient, params: DeployReleaseArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    environment = await client.patch(
        f'{release_path(project)}/releases/{params.release_id}/environments/{params.environment_id}',
        compact({'status': 'inProgress', 'comment': params.comment}),
        host=HOST,
        api_version='7.1-preview.7',
    )
    return {
        'release_id': params.release_id,
        'environment_id': params.environment_id,
        'status': (environment or {}).get('status', 'inProgress'),
        'message': f'Deployment of release {params.release_id} to environment {params.environment_id} started',
    }


class ApproveReleaseArgs(ReleaseArgs):
    approval_id: int = Field(..., ge=1, description='Approval ID')
    status: Literal['approved', 'rejected'] = Field(..., description='Approval decision')
    comment: Optional[str] = Field(None, description='Approval comment')


@group.tool(
    name='approve_release',
    description='Approve or reject a pending release approval',
    args=ApproveReleaseArgs,
)
async def approve_release(client: AdoClient, params: ApproveReleaseArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    approval = await client.patch(
        f'{release_path(project)}/approvals/{params.approval_id}',
        compact({'status': params.status, 'comments': params.comment}),
        host=HOST,
    )
    return {
        'release_id': params.release_id,
        'approval_id': params.approval_id,
        'status': (approval or {}).get('status', params.status),
        'message': f'Approval {params.approval_id} {params.status}',
    }


@group.tool(
    name='get_release_logs',
    description='List the task logs of a release environment deployment',
    args=ReleaseEnvironmentArgs,
)
async def get_release_logs(client: AdoClient, params: ReleaseEnvironmentArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    release = await client.get(f'{release_path(project)}/releases/{params.release_id}', host=HOST)
    if not release:
        raise ValueError(f'Release {params.release_id} not found')

    environment = next(
        (e for e in release.get('environments') or [] if e.get('id') == params.environment_id),
        None,
    )
    if environment is None:
        raise ValueError(
            f'Environment {params.environment_id} not found in release {params.release_id}'
        )

    logs = []
    for step in environment.get('deploySteps') or []:
        for phase in step.get('releaseDeployPhases') or []:
            for job in phase.get('deploymentJobs') or []:
                for task in job.get('tasks') or []:
                    if task.get('logUrl'):
                        logs.append(
                            compact(
                                {
                                    'task_id': task.get('id', 0),
                                    'task_name': task.get('name', ''),
                                    'status': task.get('status'),
                                    'log_url': task['logUrl'],
                                }
                            )
                        )
    return {'release_id': params.release_id, 'environment_id': params.environment_id, 'logs': logs}
