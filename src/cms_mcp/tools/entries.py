"""Entries tool with action routing.

Entries are addressed as ``<collection>:<slug>``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List

from cms_mcp.core.antlers import normalize_fields
from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import ErrorCode, validation_error
from cms_mcp.core.schema import (
    SchemaBuilder,
    ToolSchema,
    data_fragment,
    dry_run_fragment,
    site_fragment,
)
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

KIND = "entries"
ENTRY_HANDLE_DESCRIPTION = "Entry reference in the form collection:slug"

_ACTION_SUMMARY = {
    "list": "List entries, optionally filtered by collection and status",
    "get": "Get one entry with its field data",
    "create": "Create an entry in a collection",
    "update": "Update entry title, data or publish state",
    "delete": "Delete an entry",
    "publish": "Publish an entry",
    "unpublish": "Unpublish an entry",
}


def entry_handle(collection: str, slug: str) -> str:
    return f"{collection}:{slug}"


def _missing_required_fields(call: "ActionCall", collection: str, data: Dict[str, Any]) -> List[str]:
    blueprint = repository(call, "blueprints").find(collection)
    if blueprint is None:
        return []
    fields = normalize_fields(blueprint.data.get("fields"))
    return [
        name
        for name, spec in fields.items()
        if spec.required and name != "title" and data.get(name) in (None, "", [], {})
    ]


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    filters: Dict[str, Any] = {}
    if "collection" in args:
        filters["collection"] = args["collection"]
    if "site" in args:
        filters["site"] = args["site"]
    if "status" in args:
        filters["published"] = args["status"] == "published"
    entries = repository(call, KIND).list(filters)
    return list_payload("entries", entries, args, fields=("collection", "slug", "title", "published"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    entry = require(call, KIND, call.arguments["handle"])
    return {"entry": entry.to_dict()}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    collection = args["collection"]
    require(call, "collections", collection)

    slug = sanitize_handle(args.get("slug") or args["title"]).replace("_", "-")
    if not slug:
        return validation_error("Cannot derive a slug from the title", field="slug")
    handle = entry_handle(collection, slug)
    ensure_absent(call, KIND, handle)

    data = dict(args.get("data") or {})
    missing = _missing_required_fields(call, collection, data)
    if missing:
        return validation_error(
            "Missing required fields: " + ", ".join(f"data.{name}" for name in missing),
            error_code=ErrorCode.MISSING_REQUIRED,
            details={"fields": [f"data.{name}" for name in missing], "blueprint": collection},
        )

    record = {
        "collection": collection,
        "slug": slug,
        "title": args["title"],
        "published": args.get("published", True),
        "data": data,
    }
    if "site" in args:
        record["site"] = args["site"]
    if "date" in args:
        record["date"] = args["date"]
    entry = repository(call, KIND).create(handle, record)
    logger.info("Created entry %s", handle)
    return {"entry": entry.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    current = require(call, KIND, handle)

    changes: Dict[str, Any] = {}
    for name in ("title", "published", "site", "date"):
        if name in args:
            changes[name] = args[name]
    if "data" in args:
        if args.get("merge", True):
            changes["data"] = {**current.data.get("data", {}), **args["data"]}
        else:
            changes["data"] = dict(args["data"])
    entry = repository(call, KIND).update(handle, changes)
    return {"entry": entry.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _set_published(call: "ActionCall", published: bool) -> Dict[str, Any]:
    handle = call.arguments["handle"]
    current = require(call, KIND, handle)
    changes: Dict[str, Any] = {"published": published}
    if published and not current.data.get("published_at"):
        changes["published_at"] = datetime.now(timezone.utc).isoformat()
    entry = repository(call, KIND).update(handle, changes)
    return {"entry": entry.to_dict(), "published": published}


def _handle_publish(call: "ActionCall") -> Dict[str, Any]:
    return _set_published(call, True)


def _handle_unpublish(call: "ActionCall") -> Dict[str, Any]:
    return _set_published(call, False)


def _reference_schema() -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", ENTRY_HANDLE_DESCRIPTION, required=True)
        .include(dry_run_fragment())
        .build()
    )


def _build_router() -> ActionRouter:
    filter_schema = (
        SchemaBuilder()
        .string("collection", "Only entries of this collection")
        .string("status", "Only entries with this publish status", enum=["published", "draft"])
        .include(site_fragment())
        .build()
    )
    create_schema = (
        SchemaBuilder()
        .string("collection", "Collection handle", required=True)
        .string("title", "Entry title", required=True)
        .string("slug", "URL slug (derived from the title when omitted)")
        .include(data_fragment())
        .boolean("published", "Publish immediately", default=True)
        .string("date", "Entry date (ISO-8601) for dated collections")
        .include(site_fragment())
        .include(dry_run_fragment())
        .build()
    )
    update_schema = (
        SchemaBuilder()
        .string("handle", ENTRY_HANDLE_DESCRIPTION, required=True)
        .string("title", "New title")
        .include(data_fragment())
        .boolean("merge", "Merge data into existing values instead of replacing them", default=True)
        .boolean("published", "Publish state")
        .string("date", "Entry date (ISO-8601)")
        .include(site_fragment())
        .include(dry_run_fragment())
        .build()
    )
    definitions = [
        ActionDefinition(
            name="list",
            handler=_handle_list,
            summary=_ACTION_SUMMARY["list"],
            schema=list_schema(filter_schema),
        ),
        ActionDefinition(
            name="get",
            handler=_handle_get,
            summary=_ACTION_SUMMARY["get"],
            schema=SchemaBuilder().string("handle", ENTRY_HANDLE_DESCRIPTION, required=True).build(),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=create_schema,
            category=OperationCategory.CONTENT_CHANGE,
            target_field="collection",
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=update_schema,
            category=OperationCategory.CONTENT_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description=ENTRY_HANDLE_DESCRIPTION),
            category=OperationCategory.CONTENT_CHANGE,
            destructive=True,
        ),
        ActionDefinition(
            name="publish",
            handler=_handle_publish,
            summary=_ACTION_SUMMARY["publish"],
            schema=_reference_schema(),
            category=OperationCategory.CONTENT_CHANGE,
        ),
        ActionDefinition(
            name="unpublish",
            handler=_handle_unpublish,
            summary=_ACTION_SUMMARY["unpublish"],
            schema=_reference_schema(),
            category=OperationCategory.CONTENT_CHANGE,
        ),
    ]
    return ActionRouter(tool_name="cms-entries", actions=definitions)


def build_entries_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-entries",
        description="Manage entries: list, get, create, update, delete, publish, unpublish.",
        domain=KIND,
        router=_build_router(),
    )
