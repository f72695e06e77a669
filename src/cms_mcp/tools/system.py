"""System tool: server info, cache clearing and rate limit status."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from cms_mcp.core.cache import CacheKind, OperationCategory
from cms_mcp.core.responses import ErrorCode, not_found_error, validation_error
from cms_mcp.core.schema import SchemaBuilder, param
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

_ACTION_SUMMARY = {
    "info": "Server and host versions, registered tools and remote access settings",
    "clear_cache": "Clear caches for an operation category or explicit cache kinds",
    "rate_limit_status": "Remaining rate limit budget of the caller for a tool action",
}


def _handle_info(call: "ActionCall") -> Dict[str, Any]:
    runtime = call.runtime
    config = runtime.config
    tools = []
    for tool in runtime.registry or []:
        settings = config.domain(tool.domain)
        tools.append(
            {
                "name": tool.name,
                "domain": tool.domain,
                "actions": tool.router.allowed_actions(),
                "web_enabled": settings.web_enabled,
            }
        )
    return {
        "server": {"name": config.server_name, "version": config.server_version},
        "versions": runtime.versions(),
        "caller": {"mode": call.caller.mode.value, "principal": call.caller.principal_id},
        "tools": tools,
        "rate_limit": {
            "max_attempts": config.rate_limit.max_attempts,
            "decay_seconds": config.rate_limit.decay_seconds,
        },
    }


def _handle_clear_cache(call: "ActionCall") -> Any:
    args = call.arguments
    policy = call.runtime.cache_policy
    if "category" in args and "kinds" in args:
        return validation_error(
            "Invalid arguments: pass either category or kinds, not both",
            details={"fields": ["category", "kinds"]},
        )
    if "category" in args:
        report = policy.apply(OperationCategory(args["category"]))
    else:
        kinds = args.get("kinds") or [kind.value for kind in CacheKind]
        report = policy.invalidate_kinds([CacheKind(kind) for kind in kinds])
    logger.info("Cache clear requested by %s: %s", call.caller.principal_id, report.cleared_types)
    return {
        "category": report.category.value if report.category else None,
        "failed_types": report.failed_types,
        **report.to_payload(),
    }


def _handle_rate_limit_status(call: "ActionCall") -> Any:
    runtime = call.runtime
    tool_name = call.arguments["tool"]
    tool = runtime.registry.get(tool_name) if runtime.registry is not None else None
    if tool is None:
        return not_found_error("Tool", tool_name, error_code=ErrorCode.TOOL_NOT_FOUND)

    target_action = call.arguments.get("target_action", "default")
    config = runtime.config.rate_limit_for(tool.domain)
    status = runtime.rate_limiter.remaining(
        tool.name,
        target_action,
        call.caller.mode.value,
        call.caller.principal_id,
        config,
    )
    return {
        "tool": tool.name,
        "target_action": target_action,
        "limited": not call.caller.is_cli,
        "limit": status.limit,
        "remaining": status.remaining,
        "reset_in": round(status.reset_in, 2),
    }


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name="info",
            handler=_handle_info,
            summary=_ACTION_SUMMARY["info"],
        ),
        ActionDefinition(
            name="clear_cache",
            handler=_handle_clear_cache,
            summary=_ACTION_SUMMARY["clear_cache"],
            schema=(
                SchemaBuilder()
                .string(
                    "category",
                    "Operation category whose cache kinds are cleared",
                    enum=[c.value for c in OperationCategory],
                )
                .array(
                    "kinds",
                    "Cache kinds to clear (default: all)",
                    items=param("string", "Cache kind", enum=[k.value for k in CacheKind]),
                )
                .build()
            ),
        ),
        ActionDefinition(
            name="rate_limit_status",
            handler=_handle_rate_limit_status,
            summary=_ACTION_SUMMARY["rate_limit_status"],
            schema=(
                SchemaBuilder()
                .string("tool", "Tool name, e.g. cms-entries", required=True)
                .string("target_action", "Action of that tool", default="default")
                .build()
            ),
        ),
    ]
    return ActionRouter(tool_name="cms-system", actions=definitions)


def build_system_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-system",
        description="Server info, cache clearing and rate limit status.",
        domain="system",
        router=_build_router(),
    )
