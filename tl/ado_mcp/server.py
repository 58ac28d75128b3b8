"""Azure DevOps MCP Server.

This module wires the tool registry and dispatcher into an MCP server and runs
it over stdio or streamable HTTP.
"""

import argparse
import asyncio
import logfire
import sys
from dataclasses import replace
from loguru import logger
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, Tool
from tl.ado_mcp import __version__
from tl.ado_mcp.ado_client import AdoClient
from tl.ado_mcp.config import ServerConfig, load_dotenv_file
from tl.ado_mcp.dispatcher import Dispatcher, ToolRegistry
from tl.ado_mcp.errors import ConfigurationError
from tl.ado_mcp.tools.catalog import ALL_GROUPS
from typing import Any, Dict, List, Optional, Sequence


SERVER_NAME = 'tl.ado-mcp'

SERVER_INSTRUCTIONS = """
You are connected to an Azure DevOps organization. The available tools let you:

1. Query, create and update work items, their links, comments and attachments
2. Inspect Kanban boards, teams, iterations and area paths
3. Browse Git repositories, branches, commits and files
4. Create, review and complete pull requests
5. Run and monitor pipelines, builds and classic releases
6. Read and edit wiki pages
7. Look up test plans, artifact feeds, variable groups and service connections

Most tools take an optional project; when it is omitted the server's default
project is used. Every tool returns JSON text. Failures are returned as
{"error": "<message>"} with the error flag set, so read the message and adjust
the arguments instead of retrying the same call.
"""


def setup_logging(config: ServerConfig) -> None:
    """Set up logging configuration.

    Loguru writes to stderr only, since stdout carries the stdio transport.
    Every loguru record is also forwarded to logfire.
    """
    handlers: List[Dict[str, Any]] = []
    if config.log_level != 'SILENT':
        handlers.append(
            {
                'sink': sys.stderr,
                'level': config.log_level,
                'serialize': config.log_format == 'json',
            }
        )

    if not config.logfire_token:
        logger.warning('LOGFIRE_WRITE_TOKEN not found in environment variables.')
    else:
        logger.info('LOGFIRE_WRITE_TOKEN successfully loaded.')

    logfire.configure(
        token=config.logfire_token,
        service_name=SERVER_NAME,
        service_version=__version__,
        send_to_logfire='if-token-present',
        console=False,
    )
    handlers.append(logfire.loguru_handler())
    logger.configure(handlers=handlers)


def create_server(dispatcher: Dispatcher) -> Server:
    """Create the MCP server for a dispatcher.

    Argument validation is left to the dispatcher so that invalid arguments
    come back as error results rather than protocol errors.
    """
    server: Server = Server(SERVER_NAME, version=__version__, instructions=SERVER_INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> List[Tool]:
        return list(dispatcher.registry.list_tools())

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> CallToolResult:
        return await dispatcher.call_tool(name, arguments)

    return server


async def run_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='tl-ado-mcp', description='Azure DevOps MCP server')
    parser.add_argument(
        '--transport',
        choices=('stdio', 'http'),
        default=None,
        help='Transport to serve (overrides MCP_TRANSPORT)',
    )
    parser.add_argument('--host', default=None, help='HTTP bind address (overrides MCP_HTTP_HOST)')
    parser.add_argument('--port', type=int, default=None, help='HTTP port (overrides MCP_HTTP_PORT)')
    return parser.parse_args(argv)


def apply_overrides(config: ServerConfig, args: argparse.Namespace) -> ServerConfig:
    overrides: Dict[str, Any] = {}
    if args.transport:
        overrides['transport'] = args.transport
    if args.host:
        overrides['http_host'] = args.host
    if args.port:
        if args.port <= 0:
            raise ConfigurationError(f'--port must be positive, got {args.port}')
        overrides['http_port'] = args.port
    if not overrides:
        return config
    return replace(config, **overrides)


async def build_dispatcher(config: ServerConfig) -> Dispatcher:
    """Create the client, check the credentials and build the dispatcher.

    Raises:
        ConfigurationError: If the organization cannot be reached with the token
    """
    client = AdoClient(
        config.organization_url,
        config.personal_access_token,
        default_project=config.default_project,
    )
    await client.validate_connection()
    registry = ToolRegistry(ALL_GROUPS)
    logger.info(f'Registered {len(registry)} tools from {len(registry.groups)} domains')
    return Dispatcher(registry, client)


async def serve(config: ServerConfig) -> None:
    dispatcher = await build_dispatcher(config)
    logger.info(f'Created MCP server with Azure DevOps functions ({config.transport} transport)')
    logfire.info(
        'Starting Azure DevOps MCP server',
        transport=config.transport,
        organization_url=config.organization_url,
    )
    if config.transport == 'http':
        from tl.ado_mcp.http_server import run_http

        await run_http(dispatcher, config)
    else:
        await run_stdio(create_server(dispatcher))


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point to start the MCP server."""
    args = parse_args(argv)

    # Load configuration before starting the server
    load_dotenv_file()
    try:
        config = apply_overrides(ServerConfig.from_env(), args)
    except ConfigurationError as e:
        logger.error(f'Invalid configuration: {str(e)}')
        sys.exit(1)

    setup_logging(config)

    try:
        asyncio.run(serve(config))
    except ConfigurationError as e:
        logger.error(f'Failed to start server: {str(e)}')
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info('Server stopped')


if __name__ == '__main__':
    main()
