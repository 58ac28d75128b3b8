"""Branch policy tools (policy configurations)."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import ToolGroup
from tl.ado_mcp.tools.common import (
    ProjectArgs,
    RepositoryArgs,
    compact,
    display_name,
    iso_date,
    ref_name,
    segment,
    values,
)
from tl.ado_mcp.tools.git import repository_path
from typing import Any, Dict, List, Optional


group = ToolGroup('policies')


def configurations_path(project: str) -> str:
    return f'{segment(project)}/_apis/policy/configurations'


def policy_info(policy: Dict[str, Any]) -> Dict[str, Any]:
    settings = policy.get('settings') or {}
    return compact(
        {
            'id': policy.get('id'),
            'type': (policy.get('type') or {}).get('displayName'),
            'type_id': (policy.get('type') or {}).get('id'),
            'is_enabled': policy.get('isEnabled', False),
            'is_blocking': policy.get('isBlocking', False),
            'scope': [
                compact(
                    {
                        'repository_id': scope.get('repositoryId'),
                        'ref_name': scope.get('refName'),
                        'match_kind': scope.get('matchKind'),
                    }
                )
                for scope in settings.get('scope') or []
            ],
            'settings': {key: value for key, value in settings.items() if key != 'scope'},
            'created_by': display_name(policy.get('createdBy')),
            'created_date': iso_date(policy.get('createdDate')),
            'url': policy.get('url', ''),
        }
    )


class ListBranchPoliciesArgs(RepositoryArgs):
    branch: Optional[str] = Field(None, description='Filter by branch')


@group.tool(
    name='list_branch_policies',
    description='List branch policies of a repository',
    args=ListBranchPoliciesArgs,
)
async def list_branch_policies(
    client: AdoClient, params: ListBranchPoliciesArgs
) -> List[Dict[str, Any]]:
    project = client.resolve_project(params.project)
    repository = await client.get(repository_path(project, params.repository)) or {}
    payload = await client.get(
        configurations_path(project),
        params={
            'repositoryId': repository.get('id'),
            'refName': ref_name(params.branch) if params.branch else None,
        },
    )
    return [policy_info(policy) for policy in values(payload)]


class BranchPolicyArgs(ProjectArgs):
    policy_id: int = Field(..., ge=1, description='Policy configuration ID')


@group.tool(
    name='get_branch_policy',
    description='Get a branch policy configuration',
    args=BranchPolicyArgs,
)
async def get_branch_policy(client: AdoClient, params: BranchPolicyArgs) -> Dict[str, Any]:
    project = client.resolve_project(params.project)
    policy = await client.get(f'{configurations_path(project)}/{params.policy_id}')
    if not policy:
        raise ValueError(f'Branch policy {params.policy_id} not found')
    return policy_info(policy)
