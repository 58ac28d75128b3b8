"""Azure DevOps REST client used by the MCP tools.

This module wraps the organization URL, the personal access token and the
default project, and issues authenticated REST calls against the Azure DevOps
services using ``requests``.
"""

import asyncio
import base64
import logfire
import requests
from loguru import logger
from tl.ado_mcp.errors import AdoApiError, ConfigurationError
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit


API_VERSION = '7.1'
JSON_PATCH = 'application/json-patch+json'
OCTET_STREAM = 'application/octet-stream'

# Services hosted outside the main organization host
SERVICE_HOSTS = ('vsrm', 'vssps', 'feeds', 'almsearch')


class AdoClient:
    """Authenticated access to the Azure DevOps REST API."""

    def __init__(
        self,
        organization_url: str,
        personal_access_token: str,
        default_project: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        """Initialize the Azure DevOps client.

        Args:
            organization_url: Organization URL, e.g. https://dev.azure.com/contoso
            personal_access_token: Personal access token used for Basic auth
            default_project: Project used when a tool call does not name one
            session: Optional requests session, mainly for tests
            timeout: Per-request timeout in seconds
        """
        if not organization_url.strip() or not personal_access_token.strip():
            raise ConfigurationError(
                'Missing required environment variables: AZURE_DEVOPS_ORG_URL and AZURE_DEVOPS_PAT'
            )

        self._organization_url = organization_url.strip().rstrip('/')
        self._default_project = default_project or None
        self.timeout = timeout
        self.session = session or requests.Session()

        # Create basic authentication header using PAT
        credentials = base64.b64encode(f':{personal_access_token}'.encode()).decode()
        self.headers = {
            'Authorization': f'Basic {credentials}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

        logger.info(f'Initialized Azure DevOps client for organization: {self._organization_url}')

    @property
    def organization_url(self) -> str:
        return self._organization_url

    @property
    def default_project(self) -> Optional[str]:
        return self._default_project

    def resolve_project(self, project: Optional[str] = None) -> str:
        """Return the explicit project or fall back to the configured default.

        Raises:
            ValueError: If neither is available
        """
        resolved = (project or '').strip() or self._default_project
        if not resolved:
            raise ValueError(
                'Project is required. Provide a project parameter or set '
                'AZURE_DEVOPS_PROJECT environment variable.'
            )
        return resolved

    def service_url(self, host: Optional[str] = None) -> str:
        """Return the base URL of an Azure DevOps service.

        Release management, identity and package feeds live on sibling hosts
        (``vsrm.dev.azure.com/org`` or ``org.vsrm.visualstudio.com``).

        Args:
            host: One of ``vsrm``, ``vssps``, ``feeds``, ``almsearch`` or None for the main host
        """
        if not host:
            return self._organization_url
        if host not in SERVICE_HOSTS:
            raise ValueError(f'Unknown Azure DevOps service host: {host}')

        parts = urlsplit(self._organization_url)
        hostname = parts.netloc
        if hostname.endswith('.visualstudio.com'):
            org = hostname[: -len('.visualstudio.com')]
            hostname = f'{org}.{host}.visualstudio.com'
        else:
            hostname = f'{host}.{hostname}'
        return urlunsplit((parts.scheme, hostname, parts.path, '', ''))

    def url(self, path: str, host: Optional[str] = None) -> str:
        """Build an absolute URL for an API path."""
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f'{self.service_url(host)}/{path.lstrip("/")}'

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[bytes] = None,
        host: Optional[str] = None,
        api_version: Optional[str] = API_VERSION,
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """Send a request and return the successful response.

        Args:
            method: HTTP method
            path: API path relative to the service URL, or an absolute URL
            params: Query parameters; None values are dropped
            json: JSON request body
            data: Raw request body
            host: Sibling service host, see :meth:`service_url`
            api_version: Value for the ``api-version`` query parameter, None to omit
            content_type: Overrides the JSON content type
            headers: Extra request headers

        Returns:
            The response object

        Raises:
            AdoApiError: If the request fails or returns a non-success status
        """
        api_url = self.url(path, host)
        query = {key: value for key, value in (params or {}).items() if value is not None}
        if api_version and 'api-version' not in query:
            query['api-version'] = api_version

        request_headers = dict(self.headers)
        if content_type:
            request_headers['Content-Type'] = content_type
        if headers:
            request_headers.update(headers)

        logger.debug(f'{method} {api_url}')
        try:
            response = self.session.request(
                method,
                api_url,
                headers=request_headers,
                params=query,
                json=json,
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f'HTTP error calling Azure DevOps: {method} {api_url}: {str(e)}')
            raise AdoApiError(0, str(e), url=api_url) from e

        if not response.ok:
            error = AdoApiError.from_response(response)
            logger.warning(f'{method} {api_url} failed: {error}')
            raise error

        return response

    async def send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Run :meth:`request` on a worker thread."""
        return await asyncio.to_thread(self.request, method, path, **kwargs)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    async def get(self, path: str, **kwargs: Any) -> Any:
        return self._decode(await self.send('GET', path, **kwargs))

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self._decode(await self.send('POST', path, json=body, **kwargs))

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self._decode(await self.send('PATCH', path, json=body, **kwargs))

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self._decode(await self.send('PUT', path, json=body, **kwargs))

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return self._decode(await self.send('DELETE', path, **kwargs))

    async def get_text(self, path: str, **kwargs: Any) -> str:
        headers = {'Accept': 'text/plain', **kwargs.pop('headers', {})}
        response = await self.send('GET', path, headers=headers, **kwargs)
        return response.text

    async def get_bytes(self, path: str, **kwargs: Any) -> bytes:
        headers = {'Accept': OCTET_STREAM, **kwargs.pop('headers', {})}
        response = await self.send('GET', path, headers=headers, **kwargs)
        return response.content

    async def patch_work_item(self, path: str, operations: Any, **kwargs: Any) -> Any:
        """Apply JSON Patch operations to a work item endpoint."""
        return await self.patch(path, operations, content_type=JSON_PATCH, **kwargs)

    async def upload(self, path: str, data: bytes, **kwargs: Any) -> Any:
        """POST raw bytes as an octet stream."""
        response = await self.send('POST', path, data=data, content_type=OCTET_STREAM, **kwargs)
        return self._decode(response)

    async def get_connection_data(self) -> Dict[str, Any]:
        """Return the organization connection data for the authenticated user."""
        return await self.get('_apis/connectionData', api_version='7.1-preview.1') or {}

    async def validate_connection(self) -> Dict[str, Any]:
        """Check the credentials against the organization.

        Returns:
            The authenticated user record

        Raises:
            ConfigurationError: If the organization cannot be reached or rejects the token
        """
        try:
            data = await self.get_connection_data()
        except AdoApiError as e:
            logfire.error('Azure DevOps connection check failed', error=str(e))
            raise ConfigurationError(f'Failed to connect to Azure DevOps: {e}') from e

        user = data.get('authenticatedUser')
        if not user:
            raise ConfigurationError('Failed to connect to Azure DevOps: no authenticated user')

        logger.info(
            f'Connected to Azure DevOps as {user.get("providerDisplayName", user.get("id", ""))}'
        )
        logfire.info(
            'Azure DevOps connection validated',
            organization_url=self._organization_url,
            user_id=user.get('id'),
        )
        return user
