"""Tests for the streamable HTTP transport surface."""

import pytest
import time
from starlette.testclient import TestClient
from tl.ado_mcp import __version__
from tl.ado_mcp.config import ServerConfig
from tl.ado_mcp.http_server import (
    SESSION_EXPIRED_CODE,
    SessionTracker,
    close_expired_sessions,
    create_app,
)

ENV = {
    'AZURE_DEVOPS_ORG_URL': 'https://dev.azure.com/contoso',
    'AZURE_DEVOPS_PAT': 'fake-pat',
    'MCP_TRANSPORT': 'http',
}

INITIALIZE = {
    'jsonrpc': '2.0',
    'id': 1,
    'method': 'initialize',
    'params': {
        'protocolVersion': '2025-03-26',
        'capabilities': {},
        'clientInfo': {'name': 'pytest', 'version': '1.0'},
    },
}

MCP_HEADERS = {'Accept': 'application/json, text/event-stream'}


def make_app(dispatcher, **env):
    return create_app(dispatcher, ServerConfig.from_env({**ENV, **env}))


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSessionTracker:
    def test_expiry(self):
        clock = FakeClock()
        sessions = SessionTracker(60, clock=clock)
        sessions.touch('s1')

        clock.now += 59
        assert not sessions.is_expired('s1')
        assert sessions.active_count() == 1

        clock.now += 2
        assert sessions.is_expired('s1')
        assert sessions.active_count() == 0
        assert 's1' in sessions

    def test_touch_extends_session(self):
        clock = FakeClock()
        sessions = SessionTracker(60, clock=clock)
        sessions.touch('s1')
        clock.now += 50
        sessions.touch('s1')
        clock.now += 50
        assert not sessions.is_expired('s1')

    def test_unknown_session_is_not_expired(self):
        sessions = SessionTracker(60)
        assert not sessions.is_expired('never-seen')

    def test_forget(self):
        sessions = SessionTracker(60)
        sessions.touch('s1')
        sessions.forget('s1')
        sessions.forget('s1')
        assert 's1' not in sessions

    def test_prune_removes_abandoned_sessions(self):
        clock = FakeClock()
        sessions = SessionTracker(60, clock=clock)
        for number in range(1000):
            sessions.touch(f's{number}')

        clock.now += 10_000
        sessions.touch('fresh')

        assert len(sessions.prune()) == 1000
        assert len(sessions) == 1
        assert 'fresh' in sessions


class FakeTransport:
    def __init__(self):
        self.terminated = False

    async def terminate(self):
        self.terminated = True


class FakeSessionManager:
    def __init__(self, *session_ids):
        self._server_instances = {session_id: FakeTransport() for session_id in session_ids}


class TestCloseExpiredSessions:
    async def test_terminates_only_expired_transports(self):
        clock = FakeClock()
        sessions = SessionTracker(60, clock=clock)
        manager = FakeSessionManager('idle', 'busy')
        idle = manager._server_instances['idle']
        sessions.touch('idle')
        clock.now += 50
        sessions.touch('busy')
        clock.now += 20

        assert await close_expired_sessions(sessions, manager) == ['idle']

        assert idle.terminated is True
        assert list(manager._server_instances) == ['busy']
        assert manager._server_instances['busy'].terminated is False
        assert 'idle' not in sessions
        assert 'busy' in sessions

    async def test_session_unknown_to_transport_layer(self):
        clock = FakeClock()
        sessions = SessionTracker(60, clock=clock)
        sessions.touch('gone')
        clock.now += 61

        assert await close_expired_sessions(sessions, FakeSessionManager()) == ['gone']
        assert len(sessions) == 0

    def test_app_prunes_in_the_background(self, dispatcher):
        app = create_app(dispatcher, ServerConfig.from_env(ENV), prune_interval=0.01)
        with TestClient(app) as client:
            sessions = app.state.sessions
            sessions.touch('abandoned')
            sessions.timeout_seconds = -1

            for _ in range(100):
                if 'abandoned' not in sessions:
                    break
                time.sleep(0.01)

            assert 'abandoned' not in sessions
            assert client.get('/health').status_code == 200


class TestPublicRoutes:
    def test_health(self, dispatcher):
        with TestClient(make_app(dispatcher)) as client:
            response = client.get('/health')

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'healthy'
        assert body['sessions'] == 0
        assert body['timestamp']

    def test_info(self, dispatcher, registry):
        with TestClient(make_app(dispatcher)) as client:
            body = client.get('/').json()

        assert body == {
            'name': 'tl.ado-mcp',
            'version': __version__,
            'transport': 'streamable-http',
            'tools': len(registry),
            'endpoints': {'mcp': '/mcp', 'health': '/health'},
        }


class TestApiKeys:
    @pytest.fixture
    def client(self, dispatcher):
        with TestClient(make_app(dispatcher, MCP_API_KEYS='key-1,key-2')) as client:
            yield client

    def test_health_stays_public(self, client):
        assert client.get('/health').status_code == 200

    @pytest.mark.parametrize(
        'headers',
        [{}, {'X-API-Key': 'wrong'}, {'Authorization': 'Bearer wrong'}, {'Authorization': 'Basic key-1'}],
    )
    def test_rejected(self, client, headers):
        response = client.get('/', headers=headers)
        assert response.status_code == 401
        assert response.json() == {'error': 'Unauthorized'}

    def test_mcp_endpoint_is_protected(self, client):
        response = client.post('/mcp', json=INITIALIZE, headers=MCP_HEADERS)
        assert response.status_code == 401

    @pytest.mark.parametrize('headers', [{'X-API-Key': 'key-2'}, {'Authorization': 'bearer key-1'}])
    def test_accepted(self, client, headers):
        assert client.get('/', headers=headers).status_code == 200


class TestMcpEndpoint:
    def test_initialize_opens_tracked_session(self, dispatcher):
        app = make_app(dispatcher)
        with TestClient(app) as client:
            response = client.post('/mcp', json=INITIALIZE, headers=MCP_HEADERS)

            assert response.status_code == 200
            session_id = response.headers['mcp-session-id']
            assert session_id in app.state.sessions
            assert client.get('/health').json()['sessions'] == 1

    def test_expired_session(self, dispatcher):
        app = make_app(dispatcher)
        with TestClient(app) as client:
            sessions = app.state.sessions
            sessions.touch('stale-session')
            sessions.timeout_seconds = -1

            response = client.post(
                '/mcp',
                json={'jsonrpc': '2.0', 'id': 2, 'method': 'tools/list'},
                headers={**MCP_HEADERS, 'Mcp-Session-Id': 'stale-session'},
            )

        assert response.status_code == 404
        assert response.json() == {
            'jsonrpc': '2.0',
            'id': None,
            'error': {'code': SESSION_EXPIRED_CODE, 'message': 'Session expired'},
        }
        assert 'stale-session' not in sessions


class TestCors:
    def test_preflight(self, dispatcher):
        app = make_app(dispatcher, MCP_CORS_ORIGINS='https://app.example')
        with TestClient(app) as client:
            response = client.options(
                '/mcp',
                headers={
                    'Origin': 'https://app.example',
                    'Access-Control-Request-Method': 'POST',
                },
            )

        assert response.status_code == 200
        assert response.headers['access-control-allow-origin'] == 'https://app.example'

    def test_session_header_is_exposed(self, dispatcher):
        with TestClient(make_app(dispatcher)) as client:
            response = client.get('/health', headers={'Origin': 'https://anywhere.example'})

        assert 'mcp-session-id' in response.headers['access-control-expose-headers'].lower()
