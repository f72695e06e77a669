"""cms-mcp CLI entry point.

JSON-only output; every command prints one envelope.
"""

import json
from typing import Any, Dict, Optional

import anyio
import click

from cms_mcp.cli.output import emit, emit_error
from cms_mcp.config import ServerConfig, set_config
from cms_mcp.core.antlers import LintContext, lint_template, normalize_fields
from cms_mcp.core.authorization import CallerContext
from cms_mcp.server import build_dispatcher, create_server, serve


def _config(ctx: click.Context) -> ServerConfig:
    return ctx.obj["config"]


def _parse_json_object(raw: str, option: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        emit_error(
            f"Invalid JSON for {option}: {exc}",
            "INVALID_FORMAT",
            error_type="validation",
            remediation=f"Pass a JSON object to {option}",
        )
    if not isinstance(value, dict):
        emit_error(
            f"Invalid JSON for {option}: expected an object",
            "INVALID_FORMAT",
            error_type="validation",
        )
    return value


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="CMS_MCP_CONFIG_FILE",
    type=click.Path(exists=False, dir_okay=False),
    help="Path to a cms-mcp TOML config file",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """cms-mcp - CMS management tools over MCP.

    All commands output JSON.
    """
    ctx.ensure_object(dict)
    config = ServerConfig.from_env(config_file)
    set_config(config)
    ctx.obj["config"] = config


@cli.command("serve")
@click.pass_context
def serve_cmd(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    config = _config(ctx)
    config.setup_logging()
    server = create_server(config)
    try:
        anyio.run(serve, server)
    except KeyboardInterrupt:
        pass


@cli.command("tools")
@click.option("--name", help="Show the full input schema of one tool.")
@click.pass_context
def tools_cmd(ctx: click.Context, name: Optional[str]) -> None:
    """List registered tools and their actions."""
    registry = build_dispatcher(_config(ctx)).registry
    if name:
        tool = registry.get(name)
        if tool is None:
            emit_error(
                f"Tool '{name}' not found",
                "TOOL_NOT_FOUND",
                error_type="not_found",
                details={"available_tools": registry.names()},
                command="tools",
            )
        emit(
            {
                "name": tool.name,
                "description": tool.description,
                "domain": tool.domain,
                "input_schema": tool.input_schema(),
            }
        )
        return

    emit(
        {
            "tools": [
                {
                    "name": tool.name,
                    "domain": tool.domain,
                    "actions": tool.router.allowed_actions(),
                }
                for tool in registry
            ],
            "count": len(registry),
        }
    )


@cli.command("call")
@click.argument("tool")
@click.option("--args", "args_json", default=None, help="Tool arguments as a JSON object.")
@click.option(
    "--args-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Read tool arguments from a JSON file.",
)
@click.pass_context
def call_cmd(
    ctx: click.Context,
    tool: str,
    args_json: Optional[str],
    args_file: Optional[str],
) -> None:
    """Invoke TOOL once as a local caller and print the envelope."""
    if args_json and args_file:
        emit_error(
            "Use either --args or --args-file, not both",
            "VALIDATION_ERROR",
            error_type="validation",
            command="call",
        )
    if args_file:
        with open(args_file, "r", encoding="utf-8") as f:
            args_json = f.read()
    arguments = _parse_json_object(args_json, "--args") if args_json else {}

    dispatcher = build_dispatcher(_config(ctx))
    envelope = dispatcher.invoke(tool, arguments, CallerContext.cli())
    emit(envelope)
    if "error" in envelope:
        ctx.exit(1)


@cli.command("lint")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--fields", "fields_json", help='Blueprint fields as JSON, e.g. {"title": "text"}.')
@click.option(
    "--context",
    "lint_context",
    type=click.Choice([c.value for c in LintContext]),
    default=LintContext.ENTRY.value,
    show_default=True,
)
@click.option("--strict", is_flag=True, help="Also report style warnings.")
def lint_cmd(path: str, fields_json: Optional[str], lint_context: str, strict: bool) -> None:
    """Lint the Antlers template at PATH."""
    with open(path, "r", encoding="utf-8") as f:
        template = f.read()
    fields = normalize_fields(_parse_json_object(fields_json, "--fields")) if fields_json else {}
    report = lint_template(template, fields, context=lint_context, strict_mode=strict)
    emit({"path": path, "valid": report.ok, **report.to_dict()})
    if not report.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
