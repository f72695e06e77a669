"""Global sets tool with action routing.

A global set holds site-wide values. Values passed with a ``site`` are
stored as a localization of that site and fall back to the default values
when read.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.repository import Entity
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, dry_run_fragment, site_fragment
from cms_mcp.tools.common import (
    delete_schema,
    ensure_absent,
    list_payload,
    list_schema,
    repository,
    require,
    sanitize_handle,
)
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

KIND = "globals"

_ACTION_SUMMARY = {
    "list": "List global sets",
    "get": "Get a global set and its values for a site",
    "create": "Create a global set",
    "update": "Update global values",
    "delete": "Delete a global set",
}


def resolved_values(global_set: Entity, site: Optional[str] = None) -> Dict[str, Any]:
    values = dict(global_set.data.get("values") or {})
    if site:
        values.update((global_set.data.get("localizations") or {}).get(site, {}))
    return values


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    global_sets = repository(call, KIND).list()
    return list_payload("globals", global_sets, call.arguments, fields=("title",))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    site = call.arguments.get("site")
    global_set = require(call, KIND, call.arguments["handle"])
    return {
        "global": {
            "handle": global_set.handle,
            "title": global_set.data.get("title"),
            "site": site,
            "values": resolved_values(global_set, site),
        }
    }


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid global set handle", field="handle")
    ensure_absent(call, KIND, handle)
    global_set = repository(call, KIND).create(
        handle,
        {"title": args["title"], "values": dict(args.get("values") or {}), "localizations": {}},
    )
    logger.info("Created global set %s", handle)
    return {"global": global_set.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    site = args.get("site")
    current = require(call, KIND, handle)
    merge = args.get("merge", True)

    if site:
        localizations = dict(current.data.get("localizations") or {})
        existing = localizations.get(site, {}) if merge else {}
        localizations[site] = {**existing, **args["values"]}
        changes: Dict[str, Any] = {"localizations": localizations}
    else:
        existing = current.data.get("values", {}) if merge else {}
        changes = {"values": {**existing, **args["values"]}}

    global_set = repository(call, KIND).update(handle, changes)
    return {
        "global": {
            "handle": handle,
            "site": site,
            "values": resolved_values(global_set, site),
        },
        "updated_keys": sorted(args["values"]),
    }


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name="list",
            handler=_handle_list,
            summary=_ACTION_SUMMARY["list"],
            schema=list_schema(),
        ),
        ActionDefinition(
            name="get",
            handler=_handle_get,
            summary=_ACTION_SUMMARY["get"],
            schema=(
                SchemaBuilder()
                .string("handle", "Global set handle", required=True)
                .include(site_fragment())
                .build()
            ),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=(
                SchemaBuilder()
                .string("handle", "Global set handle", required=True)
                .string("title", "Global set title", required=True)
                .object("values", "Initial values keyed by field handle")
                .include(dry_run_fragment())
                .build()
            ),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=(
                SchemaBuilder()
                .string("handle", "Global set handle", required=True)
                .object("values", "Values keyed by field handle", required=True)
                .boolean("merge", "Merge into existing values instead of replacing them", default=True)
                .include(site_fragment())
                .include(dry_run_fragment())
                .build()
            ),
            category=OperationCategory.CONTENT_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Global set handle"),
            category=OperationCategory.STRUCTURAL_CHANGE,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-globals", actions=definitions)


def build_globals_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-globals",
        description="Manage global sets and their values: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
