"""Collections tool with action routing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, dry_run_fragment
from cms_mcp.tools.common import (
    delete_schema,
    ensure_absent,
    list_payload,
    list_schema,
    pick,
    read_schema,
    repository,
    require,
    sanitize_handle,
)
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

KIND = "collections"

_ACTION_SUMMARY = {
    "list": "List collections",
    "get": "Get one collection with its configuration and entry count",
    "create": "Create a collection",
    "update": "Update collection configuration",
    "delete": "Delete a collection",
}

_CONFIG_FIELDS = ("title", "route", "layout", "template", "dated", "structured", "max_depth", "sites", "taxonomies")


def _config_schema(*, create: bool) -> SchemaBuilder:
    return (
        SchemaBuilder()
        .string("handle", "Collection handle (lowercase, no spaces)", required=True)
        .string("title", "Human-readable collection title", required=create)
        .string("route", "Route pattern, e.g. /blog/{slug}")
        .string("layout", "Default layout template")
        .string("template", "Default entry template")
        .boolean("dated", "Whether entries are dated")
        .boolean("structured", "Whether entries can be nested")
        .integer("max_depth", "Maximum nesting depth for structured collections", minimum=1)
        .array("sites", "Sites where the collection is available", items="string")
        .array("taxonomies", "Taxonomies attached to the collection", items="string")
        .include(dry_run_fragment())
    )


def _entry_count(call: "ActionCall", handle: str) -> int:
    return len(repository(call, "entries").list({"collection": handle}))


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    collections = repository(call, KIND).list()
    return list_payload("collections", collections, call.arguments, fields=("title", "route", "dated", "structured"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    collection = require(call, KIND, handle)
    payload = collection.to_dict()
    payload["entries_count"] = _entry_count(call, handle)
    return {"collection": payload}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid collection handle", field="handle")
    ensure_absent(call, KIND, handle)

    data = pick(args, _CONFIG_FIELDS)
    if data.get("structured"):
        data.setdefault("max_depth", 3)
    collection = repository(call, KIND).create(handle, data)
    logger.info("Created collection %s", handle)
    return {"collection": collection.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    require(call, KIND, handle)
    changes = pick(args, _CONFIG_FIELDS)
    collection = repository(call, KIND).update(handle, changes)
    return {"collection": collection.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    require(call, KIND, handle)
    entries = repository(call, "entries")
    removed = 0
    for entry in entries.list({"collection": handle}):
        entries.delete(entry.handle)
        removed += 1
    repository(call, KIND).delete(handle)
    logger.info("Deleted collection %s and %d entries", handle, removed)
    return {"deleted": True, "handle": handle, "entries_deleted": removed}


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
            schema=read_schema(handle_description="Collection handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_config_schema(create=True).build(),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_config_schema(create=False).build(),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Collection handle"),
            category=OperationCategory.STRUCTURAL_CHANGE,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-collections", actions=definitions)


def build_collections_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-collections",
        description="Manage content collections: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
