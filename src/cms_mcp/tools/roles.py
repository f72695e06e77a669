"""Roles tool with action routing."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.responses import ErrorCode, validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, dry_run_fragment
from cms_mcp.tools.common import (
    delete_schema,
    ensure_absent,
    list_payload,
    list_schema,
    read_schema,
    repository,
    require,
)
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

KIND = "roles"
ROLE_HANDLE_PATTERN = re.compile(r"^[a-z0-9_]+$")

_ACTION_SUMMARY = {
    "list": "List roles",
    "get": "Get one role with its permissions",
    "create": "Create a role with permissions",
    "update": "Update role title or permissions",
    "delete": "Delete a role",
}

# permission -> permissions it depends on
PERMISSION_DEPENDENCIES: Dict[str, Sequence[str]] = {
    "edit entries": ("view entries",),
    "create entries": ("view entries", "view collections"),
    "delete entries": ("view entries", "edit entries"),
    "publish entries": ("view entries", "edit entries"),
    "edit users": ("view users",),
    "create users": ("view users",),
    "delete users": ("view users", "edit users"),
    "assign roles": ("view users", "edit users"),
    "edit forms": ("view forms",),
    "delete forms": ("view forms", "edit forms"),
}

HIGH_RISK_PERMISSIONS = frozenset(
    {
        "delete users",
        "assign roles",
        "edit roles",
        "delete collections",
        "delete blueprints",
        "delete forms",
        "configure sites",
    }
)


def missing_dependencies(permissions: Sequence[str]) -> Dict[str, List[str]]:
    granted = set(permissions)
    missing: Dict[str, List[str]] = {}
    for permission in permissions:
        absent = [dep for dep in PERMISSION_DEPENDENCIES.get(permission, ()) if dep not in granted]
        if absent:
            missing[permission] = absent
    return missing


def security_note(permissions: Sequence[str]) -> Optional[str]:
    if HIGH_RISK_PERMISSIONS.intersection(permissions):
        return "This role has high-risk permissions. Assign carefully and audit regularly."
    if "access cp" in permissions:
        return "This role grants control panel access. Ensure users are trusted."
    return None


def _review(permissions: Sequence[str]) -> Dict[str, Any]:
    review: Dict[str, Any] = {"permission_count": len(permissions)}
    missing = missing_dependencies(permissions)
    if missing:
        review["missing_dependencies"] = missing
    note = security_note(permissions)
    if note:
        review["security_note"] = note
    return review


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    roles = repository(call, KIND).list()
    return list_payload("roles", roles, call.arguments, fields=("title", "super"))


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    role = require(call, KIND, call.arguments["handle"])
    return {"role": role.to_dict()}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    handle = args["handle"]
    if not ROLE_HANDLE_PATTERN.match(handle):
        return validation_error(
            f"Invalid role handle '{handle}': use lowercase letters, digits and underscores",
            field="handle",
            error_code=ErrorCode.INVALID_FORMAT,
        )
    ensure_absent(call, KIND, handle)

    permissions = list(dict.fromkeys(args.get("permissions", [])))
    role = repository(call, KIND).create(
        handle,
        {"title": args["title"], "permissions": permissions, "super": args.get("super", False)},
    )
    logger.info("Created role %s with %d permissions", handle, len(permissions))
    return {"role": role.to_dict(), "created": True, "review": _review(permissions)}


def _handle_update(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    handle = args["handle"]
    current = require(call, KIND, handle)

    changes: Dict[str, Any] = {}
    if "title" in args:
        changes["title"] = args["title"]
    if "super" in args:
        changes["super"] = args["super"]
    permissions = list(current.data.get("permissions", []))
    if "permissions" in args:
        permissions = list(args["permissions"])
    permissions += [p for p in args.get("add_permissions", []) if p not in permissions]
    removed = set(args.get("remove_permissions", []))
    permissions = [p for p in dict.fromkeys(permissions) if p not in removed]
    if permissions != current.data.get("permissions", []):
        changes["permissions"] = permissions

    role = repository(call, KIND).update(handle, changes)
    return {"role": role.to_dict(), "updated_fields": sorted(changes), "review": _review(permissions)}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    require(call, KIND, handle)
    users = repository(call, "users")
    detached = 0
    for user in users.list():
        roles = user.data.get("roles") or []
        if handle in roles:
            users.update(user.handle, {"roles": [r for r in roles if r != handle]})
            detached += 1
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle, "users_updated": detached}


def _role_schema(*, create: bool) -> ToolSchema:
    builder = (
        SchemaBuilder()
        .string("handle", "Role handle (lowercase letters, digits, underscores)", required=True)
        .string("title", "Role title", required=create)
        .array("permissions", "Capabilities granted by the role", items="string")
        .boolean("super", "Grant every capability")
    )
    if not create:
        builder.array("add_permissions", "Capabilities to add", items="string")
        builder.array("remove_permissions", "Capabilities to remove", items="string")
    return builder.include(dry_run_fragment()).build()


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
            schema=read_schema(handle_description="Role handle"),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_role_schema(create=True),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_role_schema(create=False),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Role handle"),
            category=OperationCategory.DEFAULT,
            destructive=True,
        ),
    ]
    return ActionRouter(tool_name="cms-roles", actions=definitions)


def build_roles_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-roles",
        description="Manage user roles and their permissions: list, get, create, update, delete.",
        domain=KIND,
        router=_build_router(),
    )
