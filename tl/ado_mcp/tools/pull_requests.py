"""Pull request tools: lifecycle, reviewers, comments and work item links."""

import logfire
from loguru import logger
from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.text import format_description
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    RepositoryArgs,
    compact,
    display_name,
    iso_date,
    ref_name,
    segment,
    short_ref,
    values,
)
from tl.ado_mcp.tools.git import repository_path
from tl.ado_mcp.tools.work_items import get_work_items_batch
from typing import Any, Dict, List, Literal, Optional


group = ToolGroup('pull_requests')

VOTES = {10: 'approved', 5: 'approved with suggestions', 0: 'no vote', -5: 'waiting for author', -10: 'rejected'}


def pr_path(project: str, repository: str, pull_request_id: int) -> str:
    return f'{repository_path(project, repository)}/pullrequests/{pull_request_id}'


def reviewer_info(reviewer: Dict[str, Any]) -> Dict[str, Any]:
    vote = reviewer.get('vote', 0)
    return {
        'id': reviewer.get('id', ''),
        'display_name': reviewer.get('displayName', ''),
        'vote': vote,
        'vote_label': VOTES.get(vote, 'unknown'),
        'is_required': reviewer.get('isRequired', False),
    }


def pr_summary(pr: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': pr.get('pullRequestId'),
            'title': pr.get('title', ''),
            'status': pr.get('status', 'unknown'),
            'created_by': display_name(pr.get('createdBy')) or '',
            'creation_date': iso_date(pr.get('creationDate')),
            'source_branch': short_ref(pr.get('sourceRefName', '')),
            'target_branch': short_ref(pr.get('targetRefName', '')),
            'is_draft': pr.get('isDraft', False),
            'repository': pr.get('repository', {}).get('name'),
            'url': pr.get('url', ''),
        }
    )


class ListPullRequestsArgs(RepositoryArgs):
    status: Literal['active', 'completed', 'abandoned', 'all'] = Field(
        'active', description='Filter by status'
    )
    creator_id: Optional[str] = Field(None, description='Filter by creator ID')
    reviewer_id: Optional[str] = Field(None, description='Filter by reviewer ID')
    source_branch: Optional[str] = Field(None, description='Filter by source branch')
    target_branch: Optional[str] = Field(None, description='Filter by target branch')
    max_results: int = Field(50, ge=1, le=1000, description='Maximum number of pull requests')


@group.tool(
    name='list_pull_requests',
    description='List pull requests in a repository',
    args=ListPullRequestsArgs,
)
async def list_pull_requests(
    client: AdoClient, params: ListPullRequestsArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    query = {
        'searchCriteria.status': params.status,
        'searchCriteria.creatorId': params.creator_id,
        'searchCriteria.reviewerId': params.reviewer_id,
        'searchCriteria.sourceRefName': ref_name(params.source_branch) if params.source_branch else None,
        'searchCriteria.targetRefName': ref_name(params.target_branch) if params.target_branch else None,
        '$top': params.max_results,
    }
    payload = await client.get(
        f'{repository_path(project, params.repository)}/pullrequests', params=query
    )
    return [pr_summary(pr) for pr in values(payload)]


class PullRequestArgs(RepositoryArgs):
    pull_request_id: int = Field(..., ge=1, description='Pull request ID')


class GetPullRequestArgs(PullRequestArgs):
    include_commits: bool = Field(True, description='Include the commits of the pull request')
    include_work_items: bool = Field(True, description='Include linked work items')


async def linked_work_items(
    client: AdoClient, project: str, repository: str, pull_request_id: int
) -> List[Dict[str, Any]]:
    payload = await client.get(f'{pr_path(project, repository, pull_request_id)}/workitems')
    ids = [int(ref['id']) for ref in values(payload) if ref.get('id')]
    if not ids:
        return []
    work_items = await get_work_items_batch(
        client, ids, fields=['System.Title', 'System.State', 'System.WorkItemType']
    )
    return [
        {
            'id': item.get('id'),
            'title': item['fields'].get('System.Title', ''),
            'state': item['fields'].get('System.State', ''),
            'type': item['fields'].get('System.WorkItemType', ''),
        }
        for item in work_items
    ]


@group.tool(
    name='get_pull_request',
    description='Get a pull request with reviewers, commits and linked work items',
    args=GetPullRequestArgs,
)
async def get_pull_request(client: AdoClient, params: GetPullRequestArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    path = pr_path(project, params.repository, params.pull_request_id)
    pr = await client.get(path)
    if not pr:
        raise ValueError(f'Pull request {params.pull_request_id} not found')

    result = pr_summary(pr)
    result.update(
        compact(
            {
                'description': format_description(pr.get('description')),
                'closed_date': iso_date(pr.get('closedDate')),
                'merge_status': pr.get('mergeStatus'),
                'auto_complete_set_by': display_name(pr.get('autoCompleteSetBy')),
                'reviewers': [reviewer_info(r) for r in pr.get('reviewers', [])],
            }
        )
    )

    if params.include_commits:
        commits = await client.get(f'{path}/commits')
        result['commits'] = [
            {
                'commit_id': commit.get('commitId', ''),
                'message': commit.get('comment', ''),
                'author': commit.get('author', {}).get('name', ''),
            }
            for commit in values(commits)
        ]
    if params.include_work_items:
        result['work_items'] = await linked_work_items(
            client, project, params.repository, params.pull_request_id
        )
    return result


class CreatePullRequestArgs(RepositoryArgs):
    source_branch: str = Field(..., min_length=1, description='Source branch name')
    target_branch: str = Field(..., min_length=1, description='Target branch name')
    title: str = Field(..., min_length=1, description='Pull request title')
    description: Optional[str] = Field(None, description='Description (supports markdown)')
    reviewers: Optional[List[str]] = Field(None, description='Reviewer IDs')
    work_item_ids: Optional[List[int]] = Field(None, description='Work item IDs to link')
    is_draft: bool = Field(False, description='Create as a draft')
    auto_complete: bool = Field(False, description='Enable auto-complete')
    delete_source_branch: bool = Field(False, description='Delete the source branch after merge')


@group.tool(
    name='create_pull_request',
    description='Create a new pull request in an Azure DevOps repository',
    args=CreatePullRequestArgs,
)
async def create_pull_request(client: AdoClient, params: CreatePullRequestArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)

    request_body: Dict[str, Any] = {
        'sourceRefName': ref_name(params.source_branch),
        'targetRefName': ref_name(params.target_branch),
        'title': params.title,
        'isDraft': params.is_draft,
    }
    if params.description:
        request_body['description'] = params.description
    if params.reviewers:
        request_body['reviewers'] = [{'id': reviewer} for reviewer in params.reviewers]
    if params.work_item_ids:
        request_body['workItemRefs'] = [{'id': str(i)} for i in params.work_item_ids]

    created = await client.post(
        f'{repository_path(project, params.repository)}/pullrequests', request_body
    )
    pull_request_id = created.get('pullRequestId')

    if params.auto_complete and pull_request_id:
        connection = await client.get_connection_data()
        user_id = connection.get('authenticatedUser', {}).get('id')
        if user_id:
            await client.patch(
                pr_path(project, params.repository, pull_request_id),
                {
                    'autoCompleteSetBy': {'id': user_id},
                    'completionOptions': {'deleteSourceBranch': params.delete_source_branch},
                },
            )
        else:
            logger.warning(f'Could not enable auto-complete for pull request {pull_request_id}')

    logger.info(f'Created pull request {pull_request_id} in repository {params.repository}')
    logfire.info(
        'Created Azure DevOps pull request',
        project_name=project,
        repository_name=params.repository,
        pull_request_id=pull_request_id,
    )
    return {
        'id': pull_request_id,
        'title': created.get('title', params.title),
        'status': created.get('status', 'active'),
        'source_branch': short_ref(params.source_branch),
        'target_branch': short_ref(params.target_branch),
        'url': created.get('url', ''),
    }


class UpdatePullRequestArgs(PullRequestArgs):
    title: Optional[str] = Field(None, description='New title')
    description: Optional[str] = Field(None, description='New description')
    status: Optional[Literal['active', 'abandoned', 'completed']] = Field(None, description='New status')
    auto_complete: Optional[bool] = Field(None, description='Set or clear auto-complete')
    delete_source_branch: Optional[bool] = Field(None, description='Delete the source branch after merge')
    is_draft: Optional[bool] = Field(None, description='Convert to or from draft')


@group.tool(
    name='update_pull_request',
    description='Update the title, description, status, draft flag or auto-complete of a pull request',
    args=UpdatePullRequestArgs,
)
async def update_pull_request(client: AdoClient, params: UpdatePullRequestArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    update: Dict[str, Any] = compact(
        {
            'title': params.title,
            'description': params.description,
            'status': params.status,
            'isDraft': params.is_draft,
        }
    )
    if params.delete_source_branch is not None:
        update['completionOptions'] = {'deleteSourceBranch': params.delete_source_branch}
    if params.auto_complete is not None:
        if params.auto_complete:
            connection = await client.get_connection_data()
            update['autoCompleteSetBy'] = {'id': connection.get('authenticatedUser', {}).get('id')}
        else:
            update['autoCompleteSetBy'] = {'id': '00000000-0000-0000-0000-000000000000'}
    if not update:
        raise ValueError('No fields to update')

    updated = await client.patch(pr_path(project, params.repository, params.pull_request_id), update)
    result = pr_summary(updated)
    result['message'] = f'Successfully updated pull request {params.pull_request_id}'
    return result


class CompletePullRequestArgs(PullRequestArgs):
    merge_strategy: Literal['noFastForward', 'squash', 'rebase', 'rebaseMerge'] = Field(
        'noFastForward', description='Merge strategy'
    )
    delete_source_branch: Optional[bool] = Field(None, description='Delete the source branch after merge')
    commit_message: Optional[str] = Field(None, description='Custom merge commit message')
    bypass_policy: bool = Field(False, description='Bypass branch policies (requires permission)')


@group.tool(
    name='complete_pull_request',
    description='Complete (merge) a pull request',
    args=CompletePullRequestArgs,
)
async def complete_pull_request(
    client: AdoClient, params: CompletePullRequestArgs
) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    path = pr_path(project, params.repository, params.pull_request_id)
    current = await client.get(path)
    if not current:
        raise ValueError(f'Pull request {params.pull_request_id} not found')

    completed = await client.patch(
        path,
        {
            'status': 'completed',
            'lastMergeSourceCommit': current.get('lastMergeSourceCommit'),
            'completionOptions': compact(
                {
                    'mergeStrategy': params.merge_strategy,
                    'deleteSourceBranch': params.delete_source_branch,
                    'mergeCommitMessage': params.commit_message,
                    'bypassPolicy': params.bypass_policy,
                }
            ),
        },
    )
    return compact(
        {
            'id': completed.get('pullRequestId', params.pull_request_id),
            'status': completed.get('status', 'completed'),
            'merge_commit_id': completed.get('lastMergeCommit', {}).get('commitId'),
            'message': f'Successfully completed pull request {params.pull_request_id}',
        }
    )


class AddCommentArgs(PullRequestArgs):
    content: str = Field(..., min_length=1, description='Comment content (supports markdown)')
    thread_id: Optional[int] = Field(None, ge=1, description='Reply to an existing thread')
    file_path: Optional[str] = Field(None, description='File path for a file-level comment')
    line_number: Optional[int] = Field(None, ge=1, description='Line number for an inline comment')
    status: Optional[Literal['active', 'fixed', 'wontFix', 'closed', 'byDesign', 'pending']] = Field(
        None, description='Status of a new thread'
    )


@group.tool(
    name='add_pull_request_comment',
    description='Add a comment to a pull request, as a new thread or a reply',
    args=AddCommentArgs,
)
async def add_pull_request_comment(client: AdoClient, params: AddCommentArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    threads_path = f'{pr_path(project, params.repository, params.pull_request_id)}/threads'
    comment = {'content': params.content, 'commentType': 'text'}

    if params.thread_id:
        created = await client.post(f'{threads_path}/{params.thread_id}/comments', comment)
        return {
            'success': True,
            'thread_id': params.thread_id,
            'comment_id': created.get('id', 0),
            'message': f'Successfully added comment to thread {params.thread_id}',
        }

    thread: Dict[str, Any] = {'comments': [comment], 'status': params.status or 'active'}
    if params.file_path:
        context: Dict[str, Any] = {'filePath': params.file_path}
        if params.line_number:
            context['rightFileStart'] = {'line': params.line_number, 'offset': 1}
            context['rightFileEnd'] = {'line': params.line_number, 'offset': 1}
        thread['threadContext'] = context

    created = await client.post(threads_path, thread)
    comments = created.get('comments') or [{}]
    return {
        'success': True,
        'thread_id': created.get('id', 0),
        'comment_id': comments[0].get('id', 0),
        'message': f'Successfully created comment thread on pull request {params.pull_request_id}',
    }


@group.tool(
    name='get_pull_request_comments',
    description='Get the comment threads of a pull request',
    args=PullRequestArgs,
)
async def get_pull_request_comments(
    client: AdoClient, params: PullRequestArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    payload = await client.get(f'{pr_path(project, params.repository, params.pull_request_id)}/threads')
    threads = []
    for thread in values(payload):
        context = thread.get('threadContext') or {}
        threads.append(
            compact(
                {
                    'id': thread.get('id', 0),
                    'status': thread.get('status', 'unknown'),
                    'file_path': context.get('filePath'),
                    'line_number': (context.get('rightFileStart') or {}).get('line'),
                    'comments': [
                        {
                            'id': comment.get('id', 0),
                            'content': comment.get('content', ''),
                            'author': display_name(comment.get('author')) or '',
                            'created_date': iso_date(comment.get('publishedDate')),
                            'is_deleted': comment.get('isDeleted', False),
                        }
                        for comment in thread.get('comments', [])
                    ],
                }
            )
        )
    return threads


class ReviewerArgs(PullRequestArgs):
    reviewer: str = Field(..., min_length=1, description='Reviewer ID')


class AddReviewerArgs(ReviewerArgs):
    is_required: bool = Field(False, description='Mark as a required reviewer')


@group.tool(
    name='add_pull_request_reviewer',
    description='Add a reviewer to a pull request',
    args=AddReviewerArgs,
)
async def add_pull_request_reviewer(client: AdoClient, params: AddReviewerArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    await client.put(
        f'{pr_path(project, params.repository, params.pull_request_id)}/reviewers/{segment(params.reviewer)}',
        {'vote': 0, 'isRequired': params.is_required},
    )
    return {
        'success': True,
        'reviewer': params.reviewer,
        'is_required': params.is_required,
        'message': f'Successfully added reviewer {params.reviewer} to pull request {params.pull_request_id}',
    }


@group.tool(
    name='remove_pull_request_reviewer',
    description='Remove a reviewer from a pull request',
    args=ReviewerArgs,
)
async def remove_pull_request_reviewer(client: AdoClient, params: ReviewerArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    await client.delete(
        f'{pr_path(project, params.repository, params.pull_request_id)}/reviewers/{segment(params.reviewer)}'
    )
    return {
        'success': True,
        'message': f'Successfully removed reviewer {params.reviewer} from pull request {params.pull_request_id}',
    }


@group.tool(
    name='get_pull_request_work_items',
    description='Get the work items linked to a pull request',
    args=PullRequestArgs,
)
async def get_pull_request_work_items(
    client: AdoClient, params: PullRequestArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    return await linked_work_items(client, project, params.repository, params.pull_request_id)


class LinkWorkItemArgs(PullRequestArgs):
    work_item_id: int = Field(..., ge=1, description='Work item ID to link')


@group.tool(
    name='link_pull_request_work_item',
    description='Link a work item to a pull request',
    args=LinkWorkItemArgs,
)
async def link_pull_request_work_item(client: AdoClient, params: LinkWorkItemArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    pr = await client.get(pr_path(project, params.repository, params.pull_request_id))
    if not pr:
        raise ValueError(f'Pull request {params.pull_request_id} not found')

    repository = pr.get('repository', {})
    artifact_url = (
        f'vstfs:///Git/PullRequestId/{repository.get("project", {}).get("id")}'
        f'%2F{repository.get("id")}%2F{params.pull_request_id}'
    )
    await client.patch_work_item(
        f'_apis/wit/workitems/{params.work_item_id}',
        [
            {
                'op': 'add',
                'path': '/relations/-',
                'value': {
                    'rel': 'ArtifactLink',
                    'url': artifact_url,
                    'attributes': {'name': 'Pull Request'},
                },
            }
        ],
    )
    return {
        'success': True,
        'pull_request_id': params.pull_request_id,
        'work_item_id': params.work_item_id,
        'message': f'Successfully linked work item {params.work_item_id} to pull request {params.pull_request_id}',
    }
