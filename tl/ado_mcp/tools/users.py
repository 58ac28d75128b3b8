"""User and identity tools.

User lookup and search go through the identities API on ``vssps.dev.azure.com``.
"""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import NoArgs, ToolGroup
from tl.ado_mcp.tools.common import compact, values
from typing import Any, Dict, List


group = ToolGroup('users')

HOST = 'vssps'


def account_email(identity: Dict[str, Any]) -> Any:
    account = (identity.get('properties') or {}).get('Account') or {}
    if isinstance(account, dict):
        return account.get('$value')
    return None


def user_info(identity: Dict[str, Any]) -> Dict[str, Any]:
    return compact(
        {
            'id': identity.get('id', ''),
            'display_name': identity.get('customDisplayName')
            or identity.get('providerDisplayName', ''),
            'email': account_email(identity),
            'descriptor': identity.get('descriptor'),
            'is_active': identity.get('isActive'),
        }
    )


@group.tool(
    name='get_current_user',
    description='Get the user the personal access token belongs to',
    args=NoArgs,
)
async def get_current_user(client: AdoClient, params: NoArgs) -> Dict[str, Any]:
    connection_data = await client.get_connection_data()
    user = connection_data.get('authenticatedUser')
    if not user:
        raise ValueError('No authenticated user found')
    result = user_info(user)
    access_mappings = (connection_data.get('locationServiceData') or {}).get('accessMappings') or []
    if access_mappings:
        result['url'] = access_mappings[0].get('accessPoint', '')
    return result


class GetUserArgs(NoArgs):
    user_id: str = Field(..., min_length=1, description='User ID or email')


@group.tool(
    name='get_user',
    description='Get a user by ID or email',
    args=GetUserArgs,
)
async def get_user(client: AdoClient, params: GetUserArgs) -> Dict[str, Any]:
    if '@' in params.user_id:
        payload = await client.get(
            '_apis/identities',
            host=HOST,
            params={'searchFilter': 'MailAddress', 'filterValue': params.user_id},
        )
        identities = values(payload)
        if not identities:
            raise ValueError(f'User {params.user_id} not found')
        return user_info(identities[0])

    payload = await client.get('_apis/identities', host=HOST, params={'identityIds': params.user_id})
    identities = [identity for identity in values(payload) if identity]
    if not identities:
        raise ValueError(f'User {params.user_id} not found')
    return user_info(identities[0])


class SearchUsersArgs(NoArgs):
    query: str = Field(..., min_length=1, description='Name or email to search for')
    max_results: int = Field(20, ge=1, le=500, description='Maximum number of users')


@group.tool(
    name='search_users',
    description='Search users in the organization by name or email',
    args=SearchUsersArgs,
)
async def search_users(client: AdoClient, params: SearchUsersArgs) -> List[Dict[str, Any]]:
    payload = await client.get(
        '_apis/identities',
        host=HOST,
        params={'searchFilter': 'General', 'filterValue': params.query},
    )
    return [user_info(identity) for identity in values(payload)][: params.max_results]
