"""Exception types raised by the Azure DevOps MCP adapter."""

import requests
from pydantic import ValidationError
from typing import List, Optional


class AdoMcpError(Exception):
    """Base class for adapter errors."""


class ConfigurationError(AdoMcpError):
    """Raised when startup configuration is missing or the connection check fails."""


class UnknownToolError(AdoMcpError):
    """Raised when no registered domain claims a tool name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Unknown tool: {name}')


class ToolValidationError(AdoMcpError):
    """Raised when tool arguments fail schema validation.

    Args:
        tool: Name of the tool whose arguments were rejected
        errors: The pydantic validation error
    """

    def __init__(self, tool: str, errors: ValidationError) -> None:
        self.tool = tool
        self.fields: List[str] = []
        details = []
        for error in errors.errors():
            field = '.'.join(str(part) for part in error.get('loc', ())) or '<arguments>'
            self.fields.append(field)
            details.append(f'{field}: {error.get("msg", "invalid value")}')
        super().__init__(f'Invalid arguments for {tool}: {"; ".join(details)}')


class AdoApiError(AdoMcpError):
    """Raised when the Azure DevOps REST API rejects a request."""

    def __init__(self, status_code: int, message: str, url: Optional[str] = None) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f'Azure DevOps API error ({status_code}): {message}')

    @classmethod
    def from_response(cls, response: requests.Response) -> 'AdoApiError':
        """Build an error from a failed HTTP response.

        Azure DevOps returns a JSON body with a ``message`` field for most
        failures; fall back to the body text and then the HTTP reason.
        """
        message = ''
        try:
            body = response.json()
            if isinstance(body, dict):
                message = body.get('message') or ''
        except ValueError:
            pass
        if not message:
            message = (response.text or '').strip()[:500] or response.reason or 'Request failed'
        return cls(response.status_code, message, url=response.url)
