"""
Cloud Run MCP server.

Run locally (stdio):
    python -m cloudrun_mcp.mcp_server
    # or
    cloudrun-mcp --disabled-tools deploy_local_folder

On GCP (Cloud Run, GCE, ...) the server detects the metadata server and
serves the remote tool set over SSE:
    cloudrun-mcp --port 3000
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import uvicorn
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from .cli_args import build_parser, parse_cli_args
from .config import ConfigurationError, ServerConfig, ToolSettings, resolve_settings
from .gcp_metadata import check_gcp, ensure_gcp_credentials
from .logging_utils import get_safe_logger
from .mcp_handlers import check_handler_coverage, handle_tool
from .mcp_tools import build_tool_definitions
from .models import ExecutionMode
from .tool_registry import ToolFilter, create_tool_filter


logger = get_safe_logger(__name__)

SERVER_NAME = "cloud-run"


def create_server(settings: ToolSettings, tool_filter: Optional[ToolFilter] = None) -> Server:
    """Create an MCP server exposing the tools the filter lets through."""
    check_handler_coverage()

    definitions = build_tool_definitions(settings, tool_filter)
    registered = {definition["name"] for definition in definitions}
    logger.info(f"Registered {len(registered)} tools ({settings.mode.value} mode): {', '.join(sorted(registered))}")

    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List registered tools."""
        return [
            Tool(
                name=definition["name"],
                description=definition["description"],
                inputSchema=definition["inputSchema"],
            )
            for definition in definitions
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        """Handle tool calls."""
        if name not in registered:
            result = f"Unknown tool: {name}"
        else:
            result = await handle_tool(name, arguments, settings)
        return [TextContent(type="text", text=result)]

    return server


def create_sse_app(server: Server, settings: ToolSettings) -> Starlette:
    """Create Starlette app with SSE transport."""
    sse = SseServerTransport("/messages/")

    async def handle_sse(request: Request) -> Response:
        async with sse.connect_sse(
            request.scope, request.receive, request._send
        ) as streams:
            await server.run(
                streams[0], streams[1],
                server.create_initialization_options()
            )
        return Response()

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "server": SERVER_NAME,
            "transport": "sse",
            "mode": settings.mode.value,
            "project": settings.default_project_id,
        })

    return Starlette(
        routes=[
            Route("/health", health),
            Route("/sse", handle_sse),
            Mount("/messages/", app=sse.handle_post_message),
        ],
    )


async def run_stdio(server: Server) -> None:
    """Run with stdio transport (for local use)."""
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Cloud Run MCP server stdio transport connected")
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run_sse(server: Server, settings: ToolSettings, host: str, port: int) -> None:
    """Run with SSE transport (for remote use)."""
    app = create_sse_app(server, settings)
    logger.info(f"Cloud Run MCP server listening on http://{host}:{port} (SSE: /sse, health: /health)")
    uvicorn.run(app, host=host, port=port, log_level="info")


def _fail(prefix: str, error: Exception) -> None:
    print(f"{prefix}: {error}", file=sys.stderr)
    sys.exit(1)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Cloud Run MCP server",
        prog="cloudrun-mcp",
        parents=[build_parser(add_help=False)],
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default=None,
        help="Transport type (default: stdio locally, sse when running on GCP)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind for SSE (default: 127.0.0.1 locally, 0.0.0.0 on GCP)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for SSE transport (default: $PORT or 3000)",
    )
    args, _ = parser.parse_known_args(argv)

    try:
        cli_config = parse_cli_args(argv)
    except ConfigurationError as e:
        _fail("CLI argument error", e)

    try:
        config = ServerConfig.from_env()
    except ConfigurationError as e:
        _fail("Configuration error", e)

    errors = config.validate()
    if errors:
        _fail("Configuration error", ConfigurationError("; ".join(errors)))

    gcp_info = None if config.force_stdio else check_gcp()

    use_stdio = args.transport == "stdio" or (args.transport is None and gcp_info is None)
    mode = ExecutionMode.REMOTE if (not use_stdio and gcp_info is not None) else ExecutionMode.LOCAL

    settings = resolve_settings(
        config,
        metadata_project=gcp_info.project if gcp_info else None,
        metadata_region=gcp_info.region if gcp_info else None,
        mode=mode,
    )

    if settings.is_remote and not settings.default_project_id:
        _fail("Configuration error", ConfigurationError(
            "Cannot register remote tools: GCP project ID could not be determined. "
            "Set GOOGLE_CLOUD_PROJECT or run the server on GCP."
        ))

    try:
        tool_filter = create_tool_filter(
            cli_config.enabled_tools,
            cli_config.disabled_tools,
            is_remote=settings.is_remote,
        )
    except ConfigurationError as e:
        _fail("Tool filtering error", e)

    try:
        ensure_gcp_credentials()
    except ConfigurationError as e:
        _fail("Credentials error", e)

    if settings.is_remote:
        logger.info(
            f"Running on GCP project: {settings.default_project_id}, region: {settings.default_region}. "
            "Using tools optimized for remote use."
        )
    else:
        logger.info("Using tools optimized for local or stdio mode.")

    server = create_server(settings, tool_filter)

    if use_stdio:
        asyncio.run(run_stdio(server))
    else:
        host = args.host or ("0.0.0.0" if settings.is_remote else "127.0.0.1")
        run_sse(server, settings, host, args.port or config.port)


if __name__ == "__main__":
    main()
