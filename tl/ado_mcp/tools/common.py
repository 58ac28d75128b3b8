"""Shared argument models and response reshaping helpers for tool handlers."""

import re
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote


_FRACTION = re.compile(r'\.(\d+)')


class ProjectArgs(BaseModel):
    """Base model for tools scoped to a project."""

    project: Optional[str] = Field(
        None, description='Project name (defaults to AZURE_DEVOPS_PROJECT)'
    )


class RepositoryArgs(ProjectArgs):
    repository: str = Field(..., min_length=1, description='Repository name or ID')


class TeamArgs(ProjectArgs):
    team: Optional[str] = Field(None, description='Team name (defaults to the project team)')


def iso_date(value: Any) -> Optional[str]:
    """Normalise an API timestamp to ``YYYY-MM-DDTHH:MM:SS.sssZ``.

    Values that cannot be parsed are returned unchanged.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        # Azure DevOps emits up to 7 fractional digits
        text = _FRACTION.sub(lambda m: '.' + (m.group(1) + '000000')[:6], text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime('%Y-%m-%dT%H:%M:%S.') + f'{parsed.microsecond // 1000:03d}Z'


def compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None so absent fields are omitted from results."""
    return {key: value for key, value in values.items() if value is not None}


def display_name(identity: Any) -> Optional[str]:
    """Return the display name of an identity reference or plain string."""
    if isinstance(identity, dict):
        return identity.get('displayName') or identity.get('uniqueName')
    return identity or None


def segment(value: Any) -> str:
    """Quote a value for use as a single URL path segment."""
    return quote(str(value), safe='')


def ref_name(branch: str) -> str:
    """Return a full ``refs/heads/`` ref for a branch name."""
    return branch if branch.startswith('refs/') else f'refs/heads/{branch}'


def short_ref(ref: Optional[str]) -> Optional[str]:
    if ref is None:
        return None
    return ref[len('refs/heads/') :] if ref.startswith('refs/heads/') else ref


def values(payload: Any) -> List[Any]:
    """Return the ``value`` list of a collection response."""
    if isinstance(payload, dict):
        return payload.get('value') or []
    if isinstance(payload, list):
        return payload
    return []


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def web_url(payload: Dict[str, Any]) -> Optional[str]:
    return payload.get('_links', {}).get('web', {}).get('href')


def team_path(project: str, team: Optional[str]) -> str:
    """Project or project/team prefix; the default team is used when none is given."""
    if team:
        return f'{segment(project)}/{segment(team)}'
    return segment(project)
