"""Sites tool with action routing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, dry_run_fragment
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

KIND = "sites"

_ACTION_SUMMARY = {
    "list": "List sites",
    "get": "Get one site",
    "create": "Add a site",
    "update": "Update site name, URL or locale",
    "delete": "Remove a site",
}

_CONFIG_FIELDS = ("name", "url", "locale", "lang", "direction")


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    sites = repository(call, KIND).list()
    return list_payload("sites", sites, call.arguments, fields=("name", "url", "locale"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    site = require(call, KIND, call.arguments["handle"])
    return {"site": site.to_dict()}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid site handle", field="handle")
    ensure_absent(call, KIND, handle)

    record = pick(args, _CONFIG_FIELDS)
    record.setdefault("locale", "en_US")
    record.setdefault("lang", record["locale"].split("_")[0])
    site = repository(call, KIND).create(handle, record)
    logger.info("Created site %s", handle)
    return {"site": site.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    require(call, KIND, handle)
    changes = pick(args, _CONFIG_FIELDS)
    site = repository(call, KIND).update(handle, changes)
    return {"site": site.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Any:
    handle = call.arguments["handle"]
    require(call, KIND, handle)
    if len(repository(call, KIND).list()) <= 1:
        return validation_error(
            f"Cannot delete '{handle}': at least one site must remain",
            field="handle",
        )
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _site_schema(*, create: bool) -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", "Site handle", required=True)
        .string("name", "Site name", required=create)
        .string("url", "Base URL of the site", required=create)
        .string("locale", "Locale, e.g. en_US")
        .string("lang", "Language code, e.g. en")
        .string("direction", "Text direction", enum=["ltr", "rtl"])
        .include(dry_run_fragment())
        .build()
    )


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
            schema=read_schema(handle_description="Site handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_site_schema(create=True),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_site_schema(create=False),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Site handle"),
            category=OperationCategory.STRUCTURAL_CHANGE,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-sites", actions=definitions)


def build_sites_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-sites",
        description="Manage sites of a multi-site install: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
