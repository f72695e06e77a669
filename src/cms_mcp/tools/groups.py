"""User groups tool with action routing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, dry_run_fragment
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

KIND = "groups"

_ACTION_SUMMARY = {
    "list": "List user groups",
    "get": "Get one user group with its roles and members",
    "create": "Create a user group",
    "update": "Update group title or roles",
    "delete": "Delete a user group",
}


def _members(call: "ActionCall", handle: str) -> List[str]:
    return [
        user.handle
        for user in repository(call, "users").list()
        if handle in (user.data.get("groups") or [])
    ]


def _check_roles(call: "ActionCall", roles: List[str]) -> Any:
    roles_repo = repository(call, "roles")
    unknown = [role for role in roles if roles_repo.find(role) is None]
    if unknown:
        return validation_error(
            "Invalid arguments: unknown roles: " + ", ".join(unknown),
            field="roles",
            details={"unknown_roles": unknown},
        )
    return None


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    groups = repository(call, KIND).list()
    return list_payload("groups", groups, call.arguments, fields=("title", "roles"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    group = require(call, KIND, handle)
    payload = group.to_dict()
    payload["users"] = _members(call, handle)
    return {"group": payload}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = sanitize_handle(args["handle"])
    if not handle:
        return validation_error("Invalid group handle", field="handle")
    roles = list(args.get("roles", []))
    problem = _check_roles(call, roles)
    if problem is not None:
        return problem
    ensure_absent(call, KIND, handle)
    group = repository(call, KIND).create(handle, {"title": args["title"], "roles": roles})
    logger.info("Created user group %s", handle)
    return {"group": group.to_dict(), "created": True}


def _handle_update(call: "ActionCall") -> Any:
    args = call.arguments
    handle = args["handle"]
    require(call, KIND, handle)
    changes: Dict[str, Any] = {}
    if "title" in args:
        changes["title"] = args["title"]
    if "roles" in args:
        problem = _check_roles(call, args["roles"])
        if problem is not None:
            return problem
        changes["roles"] = list(args["roles"])
    group = repository(call, KIND).update(handle, changes)
    return {"group": group.to_dict(), "updated_fields": sorted(changes)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    require(call, KIND, handle)
    users = repository(call, "users")
    members = _members(call, handle)
    for email in members:
        user = users.find(email)
        if user is not None:
            users.update(email, {"groups": [g for g in user.data.get("groups", []) if g != handle]})
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle, "users_updated": len(members)}


def _group_schema(*, create: bool) -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", "Group handle", required=True)
        .string("title", "Group title", required=create)
        .array("roles", "Role handles granted to members", items="string")
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
            schema=read_schema(handle_description="Group handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_group_schema(create=True),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_group_schema(create=False),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Group handle"),
            category=OperationCategory.DEFAULT,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-groups", actions=definitions)


def build_groups_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-groups",
        description="Manage user groups: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
