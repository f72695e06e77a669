"""Templates tool: Antlers linting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from cms_mcp.core.antlers import LintContext, lint_template, normalize_fields
from cms_mcp.core.responses import ErrorCode, not_found_error
from cms_mcp.core.schema import SchemaBuilder
from cms_mcp.tools.common import repository
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

_ACTION_SUMMARY = {
    "lint": "Lint an Antlers template against blueprint fields",
}


def _handle_lint(call: "ActionCall") -> Any:
    args = call.arguments
    fields: Dict[str, Any] = {}

    blueprint_handle = args.get("blueprint")
    if blueprint_handle:
        blueprints = repository(call, "blueprints")
        blueprint = blueprints.find(blueprint_handle)
        if blueprint is None:
            return not_found_error(
                "Blueprint",
                blueprint_handle,
                error_code=ErrorCode.BLUEPRINT_NOT_FOUND,
                details={"available_blueprints": [b.handle for b in blueprints.list()]},
            )
        fields.update(normalize_fields(blueprint.data.get("fields")))

    fields.update(normalize_fields(args.get("fields")))

    report = lint_template(
        args["template"],
        fields,
        context=args.get("context", LintContext.ENTRY.value),
        strict_mode=args.get("strict_mode", False),
    )
    logger.debug(
        "Linted template: %d errors, %d warnings", len(report.errors), len(report.warnings)
    )
    return {
        "valid": report.ok,
        **report.to_dict(),
        "blueprint": blueprint_handle,
        "context": args.get("context", LintContext.ENTRY.value),
        "strict_mode": args.get("strict_mode", False),
    }


def _build_router() -> ActionRouter:
    lint_schema = (
        SchemaBuilder()
        .string("template", "Antlers template source", required=True)
        .string("blueprint", "Blueprint handle whose fields the template may use")
        .object("fields", "Inline field map {handle: type} merged over the blueprint fields")
        .string(
            "context",
            "Rendering context that decides which variables are available",
            enum=[c.value for c in LintContext],
            default=LintContext.ENTRY.value,
        )
        .boolean("strict_mode", "Also report style and best-practice warnings", default=False)
        .build()
    )
    definitions = [
        ActionDefinition(
            name="lint",
            handler=_handle_lint,
            summary=_ACTION_SUMMARY["lint"],
            schema=lint_schema,
        ),
    ]
    return ActionRouter(tool_name="cms-templates", actions=definitions)


def build_templates_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-templates",
        description="Lint Antlers templates against blueprint fields.",
        domain="templates",
        router=_build_router(),
    )
