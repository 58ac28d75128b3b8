"""Git repository tools: repositories, branches, commits and files."""

import base64
import logfire
from loguru import logger
from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    RepositoryArgs,
    compact,
    iso_date,
    segment,
    short_ref,
    values,
)
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('git')

ZERO_OBJECT_ID = '0' * 40

CHANGE_TYPES = ('add', 'edit', 'delete', 'rename')


def repository_path(project: str, repository: str) -> str:
    return f'{segment(project)}/_apis/git/repositories/{segment(repository)}'


def repository_info(repo: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': repo.get('id', ''),
            'name': repo.get('name', ''),
            'project': repo.get('project', {}).get('name'),
            'default_branch': short_ref(repo.get('defaultBranch')),
            'size': repo.get('size', 0),
            'remote_url': repo.get('remoteUrl', ''),
            'ssh_url': repo.get('sshUrl'),
            'web_url': repo.get('webUrl', ''),
            'is_disabled': repo.get('isDisabled', False),
            'is_fork': repo.get('isFork', False),
        }
    )


@group.tool(
    name='list_repositories',
    description='List all repositories in an Azure DevOps project',
    args=ProjectArgs,
)
async def list_repositories(client: AdoClient, params: ProjectArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(f'{segment(project)}/_apis/git/repositories')
    result = [repository_info(repo) for repo in values(payload)]
    # Sort repositories by name for consistent output
    result.sort(key=lambda x: x['name'].lower())
    return result


@group.tool(
    name='get_repository',
    description='Get details of a repository',
    args=RepositoryArgs,
)
async def get_repository(client: AdoClient, params: RepositoryArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    repo = await client.get(repository_path(project, params.repository))
    return repository_info(repo)


async def find_ref(
    client: AdoClient, project: str, repository: str, branch: str
) -> Optional[Dict[str, Any]]:
    payload = await client.get(
        f'{repository_path(project, repository)}/refs', params={'filter': f'heads/{branch}'}
    )
    full_name = f'refs/heads/{branch}'
    return next((ref for ref in values(payload) if ref.get('name') == full_name), None)


async def update_ref(
    client: AdoClient, project: str, repository: str, update: Dict[str, str], action: str
) -> None:
    payload = await client.post(f'{repository_path(project, repository)}/refs', [update])
    results = values(payload)
    if not results or not results[0].get('success'):
        error = (results[0].get('customMessage') or results[0].get('updateStatus')) if results else None
        raise ValueError(f'Failed to {action} branch: {error or "Unknown error"}')


class ListBranchesArgs(RepositoryArgs):
    filter: Optional[str] = Field(None, description='Only branches whose name contains this text')


@group.tool(
    name='list_branches',
    description='List all branches in a repository',
    args=ListBranchesArgs,
)
async def list_branches(client: AdoClient, params: ListBranchesArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(
        f'{repository_path(project, params.repository)}/refs',
        params={'filter': 'heads/', 'filterContains': params.filter},
    )
    result = [
        compact(
            {
                'name': short_ref(ref.get('name', '')),
                'object_id': ref.get('objectId', ''),
                'creator': ref.get('creator', {}).get('displayName'),
                'is_locked': ref.get('isLocked', False),
                'url': ref.get('url', ''),
            }
        )
        for ref in values(payload)
    ]
    # Sort branches by name for consistent output
    result.sort(key=lambda x: x['name'].lower())
    return result


class BranchArgs(RepositoryArgs):
    branch: str = Field(..., min_length=1, description='Branch name')


@group.tool(
    name='get_branch',
    description='Get a branch with its latest commit and ahead/behind counts',
    args=BranchArgs,
)
async def get_branch(client: AdoClient, params: BranchArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    stats = await client.get(
        f'{repository_path(project, params.repository)}/stats/branches',
        params={'name': short_ref(params.branch)},
    )
    if not stats:
        raise ValueError(f"Branch '{params.branch}' not found")
    commit = stats.get('commit', {})
    return compact(
        {
            'name': stats.get('name', params.branch),
            'object_id': commit.get('commitId'),
            'ahead_count': stats.get('aheadCount'),
            'behind_count': stats.get('behindCount'),
            'is_base_version': stats.get('isBaseVersion'),
            'last_commit': compact(
                {
                    'commit_id': commit.get('commitId'),
                    'message': commit.get('comment'),
                    'author': commit.get('author', {}).get('name'),
                    'date': iso_date(commit.get('author', {}).get('date')),
                }
            ),
        }
    )


class CreateBranchArgs(RepositoryArgs):
    name: str = Field(..., min_length=1, description='New branch name')
    source_branch: Optional[str] = Field(
        None, description='Branch to start from (defaults to main, then master)'
    )
    source_commit_id: Optional[str] = Field(None, description='Specific commit to branch from')


@group.tool(
    name='create_branch',
    description='Create a branch from another branch or a commit',
    args=CreateBranchArgs,
)
async def create_branch(client: AdoClient, params: CreateBranchArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)

    if params.source_commit_id:
        source_object_id = params.source_commit_id
    else:
        source_name = short_ref(params.source_branch or 'main')
        source_ref = await find_ref(client, project, params.repository, source_name)
        if source_ref is None and not params.source_branch:
            source_ref = await find_ref(client, project, params.repository, 'master')
        if source_ref is None or not source_ref.get('objectId'):
            raise ValueError(
                f"Source branch '{source_name}' not found. "
                'Please specify source_branch or source_commit_id.'
            )
        source_object_id = source_ref['objectId']

    name = short_ref(params.name)
    await update_ref(
        client,
        project,
        params.repository,
        {
            'name': f'refs/heads/{name}',
            'oldObjectId': ZERO_OBJECT_ID,
            'newObjectId': source_object_id,
        },
        'create',
    )

    logger.info(f'Created branch {name} in repository {params.repository}')
    logfire.info(
        'Created Azure DevOps branch',
        project_name=project,
        repository_name=params.repository,
        branch=name,
    )
    return {'name': name, 'object_id': source_object_id}


@group.tool(
    name='delete_branch',
    description='Delete a branch',
    args=BranchArgs,
)
async def delete_branch(client: AdoClient, params: BranchArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    branch = short_ref(params.branch)
    ref = await find_ref(client, project, params.repository, branch)
    if ref is None or not ref.get('objectId'):
        raise ValueError(f"Branch '{branch}' not found")

    await update_ref(
        client,
        project,
        params.repository,
        {
            'name': f'refs/heads/{branch}',
            'oldObjectId': ref['objectId'],
            'newObjectId': ZERO_OBJECT_ID,
        },
        'delete',
    )
    return {
        'branch': branch,
        'deleted': True,
        'message': f"Branch '{branch}' deleted successfully",
    }


def git_person(person: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    person = person or {}
    return compact(
        {
            'name': person.get('name', ''),
            'email': person.get('email', ''),
            'date': iso_date(person.get('date')),
        }
    )


class ListCommitsArgs(RepositoryArgs):
    branch: Optional[str] = Field(None, description='Branch name (defaults to the default branch)')
    author: Optional[str] = Field(None, description='Filter by author name or email')
    from_date: Optional[str] = Field(None, description='Start date (ISO format)')
    to_date: Optional[str] = Field(None, description='End date (ISO format)')
    max_results: int = Field(50, ge=1, le=1000, description='Maximum number of commits')


@group.tool(
    name='list_commits',
    description='List commits of a repository, newest first',
    args=ListCommitsArgs,
)
async def list_commits(client: AdoClient, params: ListCommitsArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    query = {
        'searchCriteria.itemVersion.version': short_ref(params.branch),
        'searchCriteria.itemVersion.versionType': 'branch' if params.branch else None,
        'searchCriteria.author': params.author,
        'searchCriteria.fromDate': params.from_date,
        'searchCriteria.toDate': params.to_date,
        'searchCriteria.$top': params.max_results,
    }
    payload = await client.get(f'{repository_path(project, params.repository)}/commits', params=query)
    return [
        compact(
            {
                'commit_id': commit.get('commitId', ''),
                'message': commit.get('comment', ''),
                'author': commit.get('author', {}).get('name', ''),
                'author_email': commit.get('author', {}).get('email'),
                'date': iso_date(commit.get('author', {}).get('date')),
                'change_counts': commit.get('changeCounts'),
                'url': commit.get('remoteUrl') or commit.get('url', ''),
            }
        )
        for commit in values(payload)
    ]


class GetCommitArgs(RepositoryArgs):
    commit_id: str = Field(..., min_length=1, description='Commit SHA')
    include_changes: bool = Field(True, description='Include the changed files')


@group.tool(
    name='get_commit',
    description='Get a commit with its author, committer and changed files',
    args=GetCommitArgs,
)
async def get_commit(client: AdoClient, params: GetCommitArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    base = f'{repository_path(project, params.repository)}/commits/{segment(params.commit_id)}'
    commit = await client.get(base)
    if not commit:
        raise ValueError(f"Commit '{params.commit_id}' not found")

    result: Dict[str, Any] = {
        'commit_id': commit.get('commitId', ''),
        'message': commit.get('comment', ''),
        'author': git_person(commit.get('author')),
        'committer': git_person(commit.get('committer')),
        'parents': commit.get('parents', []),
        'url': commit.get('remoteUrl') or commit.get('url', ''),
    }

    if params.include_changes:
        payload = await client.get(f'{base}/changes')
        changes = [
            {
                'path': change.get('item', {}).get('path', ''),
                'change_type': change.get('changeType', ''),
            }
            for change in (payload or {}).get('changes', [])
        ]
        result['changes'] = changes
        result['change_counts'] = {
            change_type: sum(1 for c in changes if change_type in c['change_type'].split(', '))
            for change_type in CHANGE_TYPES
        }

    return result


def version_params(branch: Optional[str], commit_id: Optional[str] = None) -> Dict[str, Any]:
    if commit_id:
        return {'versionDescriptor.version': commit_id, 'versionDescriptor.versionType': 'commit'}
    if branch:
        return {
            'versionDescriptor.version': short_ref(branch),
            'versionDescriptor.versionType': 'branch',
        }
    return {}


class ListFilesArgs(RepositoryArgs):
    path: str = Field('/', description='Folder path (defaults to the root)')
    branch: Optional[str] = Field(None, description='Branch name')
    recursive: bool = Field(False, description='List all descendants instead of one level')


@group.tool(
    name='list_files',
    description='List files and folders under a path in a repository',
    args=ListFilesArgs,
)
async def list_files(client: AdoClient, params: ListFilesArgs) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    query: Dict[str, Any] = {
        'scopePath': params.path,
        'recursionLevel': 'Full' if params.recursive else 'OneLevel',
        **version_params(params.branch),
    }
    payload = await client.get(f'{repository_path(project, params.repository)}/items', params=query)
    return [
        compact(
            {
                'path': item.get('path', ''),
                'is_folder': item.get('isFolder', False),
                'size': None if item.get('isFolder') else item.get('size'),
                'commit_id': item.get('commitId'),
                'url': item.get('url', ''),
            }
        )
        for item in values(payload)
        # The scope folder itself is part of the response
        if item.get('path') != params.path
    ]


class GetFileContentArgs(RepositoryArgs):
    path: str = Field(..., min_length=1, description='File path in the repository')
    branch: Optional[str] = Field(None, description='Branch name (defaults to the default branch)')
    commit_id: Optional[str] = Field(None, description='Specific commit SHA')


@group.tool(
    name='get_file_content',
    description='Get the content of a file; binary files are returned base64 encoded',
    args=GetFileContentArgs,
)
async def get_file_content(client: AdoClient, params: GetFileContentArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    items_path = f'{repository_path(project, params.repository)}/items'
    version = version_params(params.branch, params.commit_id)

    item = await client.get(items_path, params={'path': params.path, **version})
    if not item:
        raise ValueError(f"File '{params.path}' not found")

    content = await client.get_bytes(
        items_path, params={'path': params.path, 'download': 'true', **version}
    )

    encoding: Literal['text', 'base64']
    if b'\x00' in content:
        text = base64.b64encode(content).decode('ascii')
        encoding = 'base64'
    else:
        text = content.decode('utf-8', errors='replace')
        encoding = 'text'

    return {
        'path': params.path,
        'content': text,
        'encoding': encoding,
        'size': len(content),
        'commit_id': item.get('commitId', ''),
    }
