"""Enables running the CLI via: python -m cms_mcp.cli"""

from cms_mcp.cli.main import cli

if __name__ == "__main__":
    cli()
