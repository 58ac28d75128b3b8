"""Notification subscription tools."""

from pydantic import Field
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.tools.base import NoArgs, ToolGroup
from tl.ado_mcp.tools.common import compact, display_name, iso_date, values
from typing import Any, Dict, List, Optional


group = ToolGroup('notifications')


class ListSubscriptionsArgs(NoArgs):
    target_id: Optional[str] = Field(None, description='Filter by subscriber ID')


@group.tool(
    name='list_subscriptions',
    description='List notification subscriptions that send alerts on Azure DevOps events',
    args=ListSubscriptionsArgs,
)
async def list_subscriptions(
    client: AdoClient, params: ListSubscriptionsArgs
) -> List[Dict[str, Any]]:
    payload = await client.get(
        '_apis/notification/subscriptions', params={'targetId': params.target_id}
    )
    return [
        compact(
            {
                'id': subscription.get('id'),
                'description': subscription.get('description', ''),
                'status': subscription.get('status'),
                'subscriber': display_name(subscription.get('subscriber')),
                'event_type': (subscription.get('filter') or {}).get('eventType'),
                'channel': (subscription.get('channel') or {}).get('type'),
                'modified_date': iso_date(subscription.get('modifiedDate')),
                'url': subscription.get('url', ''),
            }
        )
        for subscription in values(payload)
    ]
