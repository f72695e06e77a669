"""MCP stdio server for cms-mcp.

Tools are served through the MCP SDK's low-level ``Server`` so each tool's
input schema is published exactly as the registry builds it. Every call is
answered with a single minified-JSON text block holding the response
envelope.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from cms_mcp.config import ServerConfig, get_config
from cms_mcp.core.authorization import CallerContext, Principal
from cms_mcp.core.dispatcher import Dispatcher, ToolRuntime
from cms_mcp.core.observability import audit_log
from cms_mcp.core.repository import ContentStore
from cms_mcp.tools import build_default_registry
from cms_mcp.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

PrincipalResolver = Callable[[], Optional[Principal]]


def load_content_snapshot(store: ContentStore, path: Any) -> int:
    """Seed ``store`` from a ``{kind: {handle: data}}`` JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        snapshot = json.load(f)
    created = store.load_snapshot(snapshot)
    logger.info("Loaded %d resources from %s", created, path)
    return created


def build_dispatcher(
    config: Optional[ServerConfig] = None,
    *,
    registry: Optional[ToolRegistry] = None,
    store: Optional[ContentStore] = None,
) -> Dispatcher:
    """Assemble registry, runtime and dispatcher from configuration."""
    config = config or get_config()
    registry = registry or build_default_registry()
    store = store or ContentStore.in_memory()
    if config.content_snapshot is not None:
        load_content_snapshot(store, config.content_snapshot)
    runtime = ToolRuntime.create(config, store=store, registry=registry)
    return Dispatcher(registry, runtime)


def resolve_caller_context(
    config: ServerConfig,
    principal_resolver: Optional[PrincipalResolver] = None,
) -> CallerContext:
    """stdio callers are local unless remote mode is forced."""
    if not config.security.force_remote_mode:
        return CallerContext.cli()
    principal = principal_resolver() if principal_resolver is not None else None
    return CallerContext.remote(principal)


def build_tool_listing(registry: ToolRegistry) -> List[types.Tool]:
    return [
        types.Tool(
            name=tool.name,
            description=tool.description,
            inputSchema=tool.input_schema(),
        )
        for tool in registry
    ]


def handle_tool_call(
    dispatcher: Dispatcher,
    name: str,
    arguments: Optional[Dict[str, Any]],
    context: CallerContext,
) -> List[types.TextContent]:
    envelope = dispatcher.invoke(name, arguments or {}, context)
    text = json.dumps(envelope, separators=(",", ":"), default=str)
    return [types.TextContent(type="text", text=text)]


async def handle_tool_call_async(
    dispatcher: Dispatcher,
    name: str,
    arguments: Optional[Dict[str, Any]],
    context: CallerContext,
) -> List[types.TextContent]:
    """``handle_tool_call`` on a worker thread, keeping the stdio loop responsive."""
    return await anyio.to_thread.run_sync(handle_tool_call, dispatcher, name, arguments, context)


def create_server(
    config: Optional[ServerConfig] = None,
    *,
    dispatcher: Optional[Dispatcher] = None,
    principal_resolver: Optional[PrincipalResolver] = None,
) -> Server:
    """Create and configure the MCP server instance."""
    if config is None:
        config = get_config()

    dispatcher = dispatcher or build_dispatcher(config)
    server: Server = Server(config.server_name, version=config.server_version)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return build_tool_listing(dispatcher.registry)

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        context = resolve_caller_context(config, principal_resolver)
        return await handle_tool_call_async(dispatcher, name, arguments, context)

    logger.info(
        "Server created: %s v%s (%d tools)",
        config.server_name,
        config.server_version,
        len(dispatcher.registry),
    )
    return server


async def serve(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """Entry point for the ``cms-mcp-server`` script."""
    config = get_config()
    config.setup_logging()
    try:
        server = create_server(config)
        logger.info("Starting %s v%s", config.server_name, config.server_version)
        audit_log("server_lifecycle", phase="started", server=config.server_name, version=config.server_version)
        anyio.run(serve, server)
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except Exception as exc:
        logger.error("Server error: %s: %s", type(exc).__name__, exc)
        audit_log("server_lifecycle", phase="failed", server=config.server_name, error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
