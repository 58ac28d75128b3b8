"""Cycle time calculation from work item revision history."""

import asyncio
from datetime import datetime
from loguru import logger
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.errors import AdoApiError
from tl.ado_mcp.tools.common import chunked, iso_date, values
from typing import Any, Dict, List, Optional


# Active states of the Agile, Scrum, CMMI and Basic process templates
ACTIVE_STATES = frozenset({'Active', 'Committed', 'In Progress', 'Doing'})
CLOSED_STATES = frozenset({'Closed', 'Done', 'Completed', 'Resolved', 'Removed'})

BATCH_SIZE = 10


def is_closed_state(state: Optional[str]) -> bool:
    return state in CLOSED_STATES


def _parse(value: Optional[str]) -> Optional[datetime]:
    normalised = iso_date(value)
    if not normalised:
        return None
    try:
        return datetime.fromisoformat(normalised.replace('Z', '+00:00'))
    except ValueError:
        return None


def cycle_time_days(activated: Optional[str], closed: Optional[str]) -> Optional[float]:
    """Days between activation and closure, rounded to one decimal.

    Returns None when either date is missing or closure precedes activation.
    """
    start = _parse(activated)
    end = _parse(closed)
    if start is None or end is None:
        return None
    days = round((end - start).total_seconds() / 86400, 1)
    return days if days >= 0 else None


def first_activation(updates: List[Dict[str, Any]]) -> Optional[str]:
    """Return the date of the first transition into an active state."""
    for update in updates:
        fields = update.get('fields') or {}
        state_change = fields.get('System.State') or {}
        if state_change.get('newValue') in ACTIVE_STATES:
            changed = (fields.get('System.ChangedDate') or {}).get('newValue')
            return iso_date(changed or update.get('revisedDate'))
    return None


async def get_cycle_time_info(
    client: AdoClient, work_item_id: int, closed_date: Optional[str] = None
) -> Dict[str, Any]:
    """Activation date and cycle time of one work item.

    Failures to read the history (permissions, deleted items) yield an empty
    result rather than failing the whole listing.
    """
    try:
        updates = values(await client.get(f'_apis/wit/workItems/{work_item_id}/updates'))
    except AdoApiError as e:
        logger.warning(f'Failed to get updates for work item {work_item_id}: {str(e)}')
        return {}

    activated = first_activation(updates)
    if not activated:
        return {}

    info: Dict[str, Any] = {'first_activated_date': activated}
    days = cycle_time_days(activated, closed_date)
    if closed_date and days is not None:
        info['cycle_time_days'] = days
    return info


async def fetch_cycle_times(
    client: AdoClient, work_items: List[Dict[str, Any]]
) -> Dict[int, Dict[str, Any]]:
    """Cycle time info for many work items, ten at a time.

    Args:
        client: Azure DevOps client
        work_items: Dicts with ``id``, ``state`` and optional ``closed_date``

    Returns:
        Mapping of work item ID to its cycle time info
    """
    results: Dict[int, Dict[str, Any]] = {}
    for batch in chunked(work_items, BATCH_SIZE):
        infos = await asyncio.gather(
            *(
                get_cycle_time_info(
                    client,
                    item['id'],
                    item.get('closed_date') if is_closed_state(item.get('state')) else None,
                )
                for item in batch
            )
        )
        for item, info in zip(batch, infos):
            results[item['id']] = info
    return results
