"""MCP Server for Dart task management.

This module provides a FastMCP-based MCP server exposing task tools over the
Dart workspace API: single-task CRUD, workspace configuration, CSV import and
selector-driven batch update and delete with progress tracking.
"""

import argparse
import json
import logging

from mcp.server import FastMCP
from starlette.requests import Request
from starlette.responses import Response

from .config import get_settings
from .services import ServerServices
from .services import build_services
from .tools import register_batch_tools
from .tools import register_config_tools
from .tools import register_task_tools

try:
    from .metrics_config import METRICS_ENABLED
    from .metrics_config import ensure_metrics_initialized
    from .metrics_config import get_metrics_export
    from .metrics_config import get_metrics_summary

    METRICS_AVAILABLE = True
except ImportError:
    METRICS_AVAILABLE = False
    METRICS_ENABLED = False


def create_server(services: ServerServices) -> FastMCP:
    """Build a FastMCP server with every tool bound to ``services``."""
    server = FastMCP(name="DartQueryTools")

    register_config_tools(server, services)
    register_task_tools(server, services)
    register_batch_tools(server, services)

    @server.custom_route("/health", methods=["GET"], name="health")
    async def health_check(request: Request) -> Response:
        """Health check endpoint to verify server readiness."""
        return Response(status_code=200)

    @server.custom_route("/metrics", methods=["GET"], name="metrics")
    async def metrics_endpoint(request: Request) -> Response:
        """Prometheus metrics endpoint for monitoring tool usage."""
        if not METRICS_AVAILABLE:
            return Response(
                content="# Metrics not available - OpenTelemetry not installed\n",
                status_code=503,
                media_type="text/plain",
            )
        metrics_data, content_type = get_metrics_export()
        return Response(content=metrics_data, status_code=200, media_type=content_type)

    @server.custom_route("/metrics/summary", methods=["GET"], name="metrics_summary")
    async def metrics_summary_endpoint(request: Request) -> Response:
        """JSON summary of the metrics configuration."""
        summary = get_metrics_summary() if METRICS_AVAILABLE else {"status": "unavailable"}
        return Response(content=json.dumps(summary, indent=2), status_code=200, media_type="application/json")

    return server


services = build_services()
mcp_server = create_server(services)

__all__ = ["create_server", "mcp_server", "services"]


# --- Main Server Execution ---
def main():
    """Run the main entry point for the server with argument parsing."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Dart Query MCP Server")
    parser.add_argument(
        "transport",
        choices=["sse", "stdio"],
        default="stdio",
        nargs="?",
        help="Transport: 'sse' for HTTP SSE or 'stdio' for standard I/O (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default=settings.sse_host,
        help=f"Host to bind to for SSE transport (default: {settings.sse_host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.sse_port,
        help=f"Port to bind to for SSE transport (default: {settings.sse_port})",
    )

    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    if METRICS_AVAILABLE and settings.enable_metrics:
        ensure_metrics_initialized()

    # stdout carries the stdio protocol, so status goes to the log
    logger = logging.getLogger(__name__)
    logger.info("Dart Query server starting. Tools exposed by '%s'", mcp_server.name)
    logger.info("Metrics: %s", "enabled" if METRICS_ENABLED else "disabled")
    if not settings.token_configured:
        logger.warning("DART_TOKEN is not set; every tool call will fail until it is configured")

    if args.transport == "stdio":
        mcp_server.run(transport="stdio")
    else:
        logger.info("MCP server running with HTTP SSE transport on %s:%s", args.host, args.port)
        mcp_server.settings.host = args.host
        mcp_server.settings.port = args.port
        mcp_server.run(transport="sse")


if __name__ == "__main__":
    main()
