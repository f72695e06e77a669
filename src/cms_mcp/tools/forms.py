"""Forms tool with action routing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, dry_run_fragment, param
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

KIND = "forms"

_ACTION_SUMMARY = {
    "list": "List forms",
    "get": "Get one form with its configuration",
    "create": "Create a form",
    "update": "Update form configuration",
    "delete": "Delete a form",
}

_EMAIL_ITEM = param(
    "object",
    "Notification email",
    properties={
        "to": param("string", "Recipient address"),
        "from": param("string", "Sender address"),
        "subject": param("string", "Subject line"),
        "template": param("string", "Email template"),
    },
    required_properties=["to"],
)

_CONFIG_FIELDS = ("title", "blueprint", "store", "honeypot", "email")


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    forms = repository(call, KIND).list()
    return list_payload("forms", forms, call.arguments, fields=("title", "store"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    form = require(call, KIND, call.arguments["handle"])
    return {"form": form.to_dict()}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid form handle", field="handle")
    ensure_absent(call, KIND, handle)

    record = pick(args, _CONFIG_FIELDS)
    record.setdefault("title", handle.replace("_", " ").title())
    form = repository(call, KIND).create(handle, record)
    logger.info("Created form %s", handle)
    return {"form": form.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    require(call, KIND, handle)
    changes = pick(args, _CONFIG_FIELDS)
    form = repository(call, KIND).update(handle, changes)
    return {"form": form.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _config_schema() -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", "Form handle", required=True)
        .string("title", "Form title")
        .string("blueprint", "Blueprint describing the form fields")
        .boolean("store", "Store submissions")
        .string("honeypot", "Honeypot field name for spam protection")
        .array("email", "Notification emails sent on submission", items=_EMAIL_ITEM)
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
            schema=read_schema(handle_description="Form handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_config_schema(),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_config_schema(),
            category=OperationCategory.STRUCTURAL_CHANGE,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Form handle"),
            category=OperationCategory.STRUCTURAL_CHANGE,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-forms", actions=definitions)


def build_forms_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-forms",
        description="Manage forms: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
