"""Configuration for the Azure DevOps MCP adapter.

Settings are read once at startup from the process environment, optionally
seeded from a ``.env`` file.
"""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv
from loguru import logger
from pathlib import Path
from tl.ado_mcp.errors import ConfigurationError
from typing import Mapping, Optional, Tuple


TRANSPORTS = ('stdio', 'http')
LOG_FORMATS = ('text', 'json')
LOG_LEVELS = ('TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL', 'SILENT')


def load_dotenv_file() -> Optional[Path]:
    """Load configuration from a .env file.

    Looks in the current working directory first, then in the package directory
    and up to 3 levels above it.

    Returns:
        The path of the loaded file, or None when no file was found
    """
    candidates = [Path.cwd() / '.env']
    current_dir = Path(os.path.dirname(os.path.abspath(__file__)))
    for _ in range(4):
        candidates.append(current_dir / '.env')
        current_dir = current_dir.parent

    for env_file in candidates:
        if env_file.exists():
            logger.info(f'Loading configuration from {env_file}')
            load_dotenv(dotenv_path=env_file)
            return env_file

    logger.warning('No .env file found. Using environment variables if available.')
    return None


def _split_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(',') if item.strip())


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, '').strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f'{name} must be an integer, got {raw!r}')
    if value <= 0:
        raise ConfigurationError(f'{name} must be positive, got {value}')
    return value


@dataclass(frozen=True)
class ServerConfig:
    """Startup settings shared by both transports."""

    organization_url: str
    personal_access_token: str = field(repr=False)
    default_project: Optional[str] = None
    transport: str = 'stdio'
    http_host: str = '127.0.0.1'
    http_port: int = 3000
    session_timeout_minutes: int = 30
    api_keys: Tuple[str, ...] = field(default=(), repr=False)
    cors_origins: Tuple[str, ...] = ('*',)
    log_level: str = 'INFO'
    log_format: str = 'text'
    logfire_token: Optional[str] = field(default=None, repr=False)

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_keys)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ServerConfig':
        """Build the configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``

        Returns:
            The validated configuration

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        organization_url = env.get('AZURE_DEVOPS_ORG_URL', '').strip()
        personal_access_token = env.get('AZURE_DEVOPS_PAT', '').strip()

        missing = [
            name
            for name, value in (
                ('AZURE_DEVOPS_ORG_URL', organization_url),
                ('AZURE_DEVOPS_PAT', personal_access_token),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f'Missing required environment variables: {" and ".join(missing)}'
            )

        transport = env.get('MCP_TRANSPORT', 'stdio').strip().lower() or 'stdio'
        if transport not in TRANSPORTS:
            raise ConfigurationError(
                f'MCP_TRANSPORT must be one of {", ".join(TRANSPORTS)}, got {transport!r}'
            )

        log_format = env.get('MCP_LOG_FORMAT', 'text').strip().lower() or 'text'
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f'MCP_LOG_FORMAT must be one of {", ".join(LOG_FORMATS)}, got {log_format!r}'
            )

        log_level = env.get('MCP_LOG_LEVEL', 'INFO').strip().upper() or 'INFO'
        if log_level == 'WARN':
            log_level = 'WARNING'
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f'MCP_LOG_LEVEL {log_level!r} is not a known level')

        return cls(
            organization_url=organization_url.rstrip('/'),
            personal_access_token=personal_access_token,
            default_project=env.get('AZURE_DEVOPS_PROJECT', '').strip() or None,
            transport=transport,
            http_host=env.get('MCP_HTTP_HOST', '').strip() or '127.0.0.1',
            http_port=_int_setting(env, 'MCP_HTTP_PORT', 3000),
            session_timeout_minutes=_int_setting(env, 'MCP_SESSION_TIMEOUT', 30),
            api_keys=_split_list(env.get('MCP_API_KEYS', '')),
            cors_origins=_split_list(env.get('MCP_CORS_ORIGINS', '')) or ('*',),
            log_level=log_level,
            log_format=log_format,
            logfire_token=env.get('LOGFIRE_WRITE_TOKEN', '').strip() or None,
        )
