"""Blueprints tool with action routing.

A blueprint is a named list of field definitions. Stored field maps use the
``{handle: {"type": ..., "required": ...}}`` shape the template linter reads.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Sequence

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, dry_run_fragment, param
from cms_mcp.tools.common import (
    delete_schema,
    ensure_absent,
    list_payload,
    list_schema,
    read_schema,
    repository,
    require,
    sanitize_handle,
)
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

KIND = "blueprints"

FIELD_TYPES = (
    "text",
    "textarea",
    "markdown",
    "bard",
    "replicator",
    "assets",
    "date",
    "entries",
    "taxonomy",
    "users",
    "toggle",
    "select",
    "integer",
    "slug",
    "link",
    "code",
)

_ACTION_SUMMARY = {
    "list": "List blueprints",
    "get": "Get one blueprint with its field definitions",
    "create": "Create a blueprint from field definitions",
    "update": "Update blueprint title or field definitions",
    "delete": "Delete a blueprint",
}

_FIELD_ITEM = param(
    "object",
    "Field definition",
    properties={
        "handle": param("string", "Field handle"),
        "type": param("string", "Field type", enum=FIELD_TYPES),
        "required": param("boolean", "Whether the field must have a value"),
        "display": param("string", "Label shown to editors"),
    },
    required_properties=["handle", "type"],
    additional_properties=False,
)


def fields_to_map(fields: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for item in fields:
        config = {"type": item["type"], "required": bool(item.get("required", False))}
        if item.get("display"):
            config["display"] = item["display"]
        result[item["handle"]] = config
    return result


def _duplicate_handles(fields: Sequence[Mapping[str, Any]]) -> List[str]:
    seen: List[str] = []
    duplicates: List[str] = []
    for item in fields:
        handle = item["handle"]
        if handle in seen and handle not in duplicates:
            duplicates.append(handle)
        seen.append(handle)
    return duplicates


def _check_fields(fields: Sequence[Mapping[str, Any]]) -> Any:
    duplicates = _duplicate_handles(fields)
    if duplicates:
        return validation_error(
            "Duplicate field handles: " + ", ".join(duplicates),
            field="fields",
            details={"duplicates": duplicates},
        )
    return None


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    filters = {"namespace": call.arguments["namespace"]} if "namespace" in call.arguments else None
    blueprints = repository(call, KIND).list(filters)
    payload = list_payload("blueprints", blueprints, call.arguments, fields=("title", "namespace"))
    counts = {blueprint.handle: len(blueprint.data.get("fields") or {}) for blueprint in blueprints}
    for item in payload["blueprints"]:
        item["field_count"] = counts[item["handle"]]
    return payload


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    blueprint = require(call, KIND, call.arguments["handle"])
    return {"blueprint": blueprint.to_dict()}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid blueprint handle", field="handle")
    fields = args.get("fields", [])
    problem = _check_fields(fields)
    if problem is not None:
        return problem
    ensure_absent(call, KIND, handle)

    record: Dict[str, Any] = {"title": args["title"], "fields": fields_to_map(fields)}
    if "namespace" in args:
        record["namespace"] = args["namespace"]
    blueprint = repository(call, KIND).create(handle, record)
    logger.info("Created blueprint %s with %d fields", handle, len(record["fields"]))
    return {"blueprint": blueprint.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Any:
    args = call.arguments
    handle = args["handle"]
    require(call, KIND, handle)
    changes: Dict[str, Any] = {}
    if "title" in args:
        changes["title"] = args["title"]
    if "fields" in args:
        problem = _check_fields(args["fields"])
        if problem is not None:
            return problem
        changes["fields"] = fields_to_map(args["fields"])
    blueprint = repository(call, KIND).update(handle, changes)
    return {"blueprint": blueprint.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _definition_schema(*, create: bool) -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", "Blueprint handle", required=True)
        .string("title", "Blueprint title", required=create)
        .string("namespace", "Owner namespace, e.g. collections.blog")
        .array("fields", "Field definitions", items=_FIELD_ITEM)
        .include(dry_run_fragment())
        .build()
    )


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name="list",
            handler=_handle_list,
            summary=_ACTION_SUMMARY["list"],
            schema=list_schema(SchemaBuilder().string("namespace", "Only blueprints in this namespace").build()),
        ),
        ActionDefinition(
            name="get",
            handler=_handle_get,
            summary=_ACTION_SUMMARY["get"],
            schema=read_schema(handle_description="Blueprint handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_definition_schema(create=True),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_definition_schema(create=False),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Blueprint handle"),
            category=OperationCategory.STRUCTURAL_CHANGE,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-blueprints", actions=definitions)


def build_blueprints_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-blueprints",
        description="Manage blueprints (field definitions): list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
