"""cms-mcp - MCP server exposing CMS resources as action-routed tools."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("cms-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.1.0"

from cms_mcp.server import create_server, main

__all__ = ["__version__", "create_server", "main"]
