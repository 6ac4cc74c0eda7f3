#!/usr/bin/env python3
"""
MCP Server for Wake Memory
Copyright 2025 Jurden Bruce

Speaks MCP over stdio. stdout belongs to the transport, so all logging
goes to stderr.
"""

import sys
import asyncio
import json
import logging
import traceback
from typing import Optional

from mcp.server.models import InitializationOptions
from mcp.server import NotificationOptions, Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from . import __version__
from .config import WakeConfig, load_config
from .context_service import ContextService
from .mcp_tools import get_tool_definitions, handle_tool_call
from .storage.sqlite_store import SQLiteStore

logger = logging.getLogger("wake-memory")

app = Server("wake-memory")
context_service: Optional[ContextService] = None


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
    )


def create_service(config: WakeConfig) -> ContextService:
    store = SQLiteStore(config.db_path)
    return ContextService(store, config=config)


@app.list_tools()
async def handle_list_tools() -> list[Tool]:
    """List available context tools"""
    return get_tool_definitions()


@app.call_tool()
async def handle_call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls with proper error handling"""
    if context_service is None:
        return [TextContent(type="text", text=json.dumps({"error": "Context service not initialized"}))]
    return await handle_tool_call(name, arguments, context_service)


async def main():
    """Main entry point"""
    global context_service

    config = load_config()
    configure_logging(config.log_level)

    try:
        logger.info(f"Initializing ContextService at {config.db_path}")
        context_service = create_service(config)

        logger.info("Starting MCP server...")
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name="wake-memory",
                    server_version=__version__,
                    capabilities=app.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        sys.exit(1)
    finally:
        if context_service:
            await context_service.shutdown()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
