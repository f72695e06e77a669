"""cms-mcp command-line interface."""

from cms_mcp.cli.main import cli
from cms_mcp.cli.output import emit, emit_error

__all__ = ["cli", "emit", "emit_error"]
