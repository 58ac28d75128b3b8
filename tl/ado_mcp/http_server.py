"""Streamable HTTP transport.

The MCP endpoint is served by the SDK's session manager. This module adds the
surrounding HTTP surface: health and info routes, API key authentication, CORS
and idle session expiry.
"""

import anyio
import contextlib
import hmac
import time
import uvicorn
from datetime import datetime, timezone
from loguru import logger
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from tl.ado_mcp import __version__
from tl.ado_mcp.config import ServerConfig
from tl.ado_mcp.dispatcher import Dispatcher
from tl.ado_mcp.server import SERVER_NAME, create_server
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional


SESSION_HEADER = 'mcp-session-id'
SESSION_EXPIRED_CODE = -32001
SESSION_PRUNE_INTERVAL = 300
PUBLIC_PATHS = frozenset({'/health'})


class SessionTracker:
    """Last activity time of every MCP session seen by the endpoint.

    A session idle for longer than the timeout is expired. Expired sessions
    stay tracked until a request for them arrives or the next prune, so a
    client returning soon after expiry is told the session expired instead of
    getting an unknown session error.
    """

    def __init__(self, timeout_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._last_seen: Dict[str, float] = {}

    def touch(self, session_id: str) -> None:
        self._last_seen[session_id] = self._clock()

    def forget(self, session_id: str) -> None:
        self._last_seen.pop(session_id, None)

    def is_expired(self, session_id: str) -> bool:
        last_seen = self._last_seen.get(session_id)
        if last_seen is None:
            return False
        return self._clock() - last_seen > self.timeout_seconds

    def active_count(self) -> int:
        return sum(1 for session_id in self._last_seen if not self.is_expired(session_id))

    def prune(self) -> List[str]:
        """Forget every expired session and return their ids."""
        expired = [session_id for session_id in self._last_seen if self.is_expired(session_id)]
        for session_id in expired:
            self.forget(session_id)
        return expired

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._last_seen

    def __len__(self) -> int:
        return len(self._last_seen)


async def close_expired_sessions(
    sessions: SessionTracker, session_manager: StreamableHTTPSessionManager
) -> List[str]:
    """Forget expired sessions and terminate their SDK transports."""
    expired = sessions.prune()
    # The session manager has no public API for closing a single session
    transports = session_manager._server_instances
    for session_id in expired:
        transport = transports.pop(session_id, None)
        if transport is not None:
            await transport.terminate()
    if expired:
        logger.info(f'Closed {len(expired)} expired sessions')
    return expired


async def prune_sessions(
    sessions: SessionTracker, session_manager: StreamableHTTPSessionManager, interval: float
) -> None:
    while True:
        await anyio.sleep(interval)
        await close_expired_sessions(sessions, session_manager)


def session_expired_response() -> JSONResponse:
    return JSONResponse(
        {
            'jsonrpc': '2.0',
            'id': None,
            'error': {'code': SESSION_EXPIRED_CODE, 'message': 'Session expired'},
        },
        status_code=404,
    )


def _header(scope: Scope, name: str) -> Optional[str]:
    target = name.encode('latin-1')
    for key, value in scope.get('headers') or []:
        if key.lower() == target:
            return value.decode('latin-1')
    return None


class McpEndpoint:
    """ASGI endpoint in front of the session manager that tracks session activity."""

    def __init__(self, session_manager: StreamableHTTPSessionManager, sessions: SessionTracker) -> None:
        self.session_manager = session_manager
        self.sessions = sessions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = _header(scope, SESSION_HEADER)

        if session_id and self.sessions.is_expired(session_id):
            self.sessions.forget(session_id)
            logger.info(f'Rejected request for expired session {session_id}')
            await session_expired_response()(scope, receive, send)
            return

        async def track_session(message: Message) -> None:
            if message['type'] == 'http.response.start' and message.get('status', 500) < 400:
                for key, value in message.get('headers') or []:
                    if key.lower() == SESSION_HEADER.encode('latin-1'):
                        self.sessions.touch(value.decode('latin-1'))
            await send(message)

        if session_id and scope.get('method') != 'DELETE':
            self.sessions.touch(session_id)

        await self.session_manager.handle_request(scope, receive, track_session)

        if session_id and scope.get('method') == 'DELETE':
            self.sessions.forget(session_id)
            logger.info(f'Closed session {session_id}')


class ApiKeyMiddleware:
    """Require one of the configured API keys on every non-public path.

    The key is read from ``X-API-Key`` or from an ``Authorization: Bearer`` header.
    """

    def __init__(self, app: ASGIApp, api_keys: Iterable[str]) -> None:
        self.app = app
        self.api_keys = tuple(api_keys)

    def _authorized(self, scope: Scope) -> bool:
        candidate = _header(scope, 'x-api-key')
        if candidate is None:
            authorization = _header(scope, 'authorization') or ''
            if authorization[:7].lower() == 'bearer ':
                candidate = authorization[7:].strip()
        if not candidate:
            return False
        return any(hmac.compare_digest(candidate, key) for key in self.api_keys)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope['type'] != 'http'
            or not self.api_keys
            or scope.get('path') in PUBLIC_PATHS
            or self._authorized(scope)
        ):
            await self.app(scope, receive, send)
            return
        logger.warning(f'Unauthorized request to {scope.get("path")}')
        await JSONResponse({'error': 'Unauthorized'}, status_code=401)(scope, receive, send)


def create_app(
    dispatcher: Dispatcher, config: ServerConfig, prune_interval: float = SESSION_PRUNE_INTERVAL
) -> Starlette:
    """Create the Starlette application serving MCP over streamable HTTP.

    Args:
        dispatcher: Dispatcher executing the tool calls
        config: Server configuration
        prune_interval: Seconds between sweeps that close expired sessions
    """
    session_manager = StreamableHTTPSessionManager(
        app=create_server(dispatcher),
        json_response=False,
        stateless=False,
    )
    sessions = SessionTracker(config.session_timeout_minutes * 60)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                'status': 'healthy',
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'sessions': sessions.active_count(),
            }
        )

    async def info(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                'name': SERVER_NAME,
                'version': __version__,
                'transport': 'streamable-http',
                'tools': len(dispatcher.registry),
                'endpoints': {'mcp': '/mcp', 'health': '/health'},
            }
        )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            async with anyio.create_task_group() as task_group:
                task_group.start_soon(prune_sessions, sessions, session_manager, prune_interval)
                logger.info('MCP session manager started')
                yield
                task_group.cancel_scope.cancel()
        logger.info('MCP session manager stopped')

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=list(config.cors_origins),
            allow_methods=['GET', 'POST', 'DELETE', 'OPTIONS'],
            allow_headers=['*'],
            expose_headers=['Mcp-Session-Id'],
        ),
        Middleware(ApiKeyMiddleware, api_keys=config.api_keys),
    ]

    app = Starlette(
        routes=[
            Route('/health', health, methods=['GET']),
            Route('/', info, methods=['GET']),
            Route(
                '/mcp',
                endpoint=McpEndpoint(session_manager, sessions),
                methods=['GET', 'POST', 'DELETE'],
            ),
        ],
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.sessions = sessions
    return app


async def run_http(dispatcher: Dispatcher, config: ServerConfig) -> None:
    """Serve the HTTP application until interrupted."""
    app = create_app(dispatcher, config)
    if not config.auth_enabled:
        logger.warning('MCP_API_KEYS is not set, the HTTP endpoint accepts unauthenticated requests')
    logger.info(f'Serving MCP over HTTP on http://{config.http_host}:{config.http_port}/mcp')
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.http_host, port=config.http_port, log_level='warning')
    )
    await server.serve()
