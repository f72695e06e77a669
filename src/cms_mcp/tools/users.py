"""Users tool with action routing.

Users are addressed by email address. Passwords are stored as bcrypt
hashes and never returned.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Sequence

import bcrypt

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.repository import Entity
from cms_mcp.core.responses import ErrorCode, validation_error
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, data_fragment, dry_run_fragment
from cms_mcp.tools.common import (
    delete_schema,
    ensure_absent,
    list_payload,
    list_schema,
    repository,
    require,
)
from cms_mcp.tools.router import ActionDefinition, ActionRouter, ToolDefinition

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

logger = logging.getLogger(__name__)

KIND = "users"
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_ROUNDS = 12
# bcrypt only hashes the first 72 bytes.
MAX_PASSWORD_BYTES = 72
PRIVATE_FIELDS = ("password_hash",)

_ACTION_SUMMARY = {
    "list": "List users, optionally filtered by role or group",
    "get": "Get one user",
    "create": "Create a user",
    "update": "Update user details, roles or groups",
    "delete": "Delete a user",
    "activate": "Activate a user account",
    "deactivate": "Deactivate a user account",
}


def hash_password(password: str, *, rounds: int = PASSWORD_ROUNDS) -> str:
    """bcrypt hash of ``password`` with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def public_view(user: Entity) -> Dict[str, Any]:
    view = user.to_dict()
    for name in PRIVATE_FIELDS:
        view.pop(name, None)
    view["email"] = user.handle
    return view


def _unknown(call: "ActionCall", kind: str, handles: Sequence[str]) -> List[str]:
    repo = repository(call, kind)
    return [handle for handle in handles if repo.find(handle) is None]


def _check_memberships(call: "ActionCall", args: Dict[str, Any]) -> Any:
    unknown_roles = _unknown(call, "roles", args.get("roles", []))
    unknown_groups = _unknown(call, "groups", args.get("groups", []))
    if not unknown_roles and not unknown_groups:
        return None
    problems = []
    if unknown_roles:
        problems.append("unknown roles: " + ", ".join(unknown_roles))
    if unknown_groups:
        problems.append("unknown groups: " + ", ".join(unknown_groups))
    return validation_error(
        "Invalid arguments: " + "; ".join(problems),
        details={"unknown_roles": unknown_roles, "unknown_groups": unknown_groups},
    )


def _check_password(args: Dict[str, Any]) -> Any:
    password = args.get("password")
    if password and len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return validation_error(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            field="password",
            error_code=ErrorCode.INVALID_FORMAT,
        )
    return None


def _handle_list(call: "ActionCall") -> Dict[str, Any]:
    args = call.arguments
    users = repository(call, KIND).list()
    if "role" in args:
        users = [user for user in users if args["role"] in (user.data.get("roles") or [])]
    if "group" in args:
        users = [user for user in users if args["group"] in (user.data.get("groups") or [])]
    payload = list_payload("users", users, args, fields=("name", "roles", "super", "status"))
    return payload


def _handle_get(call: "ActionCall") -> Dict[str, Any]:
    user = require(call, KIND, call.arguments["handle"])
    return {"user": public_view(user)}


def _handle_create(call: "ActionCall") -> Any:
    args = call.arguments
    email = args["email"].strip().lower()
    if not EMAIL_PATTERN.match(email):
        return validation_error(
            f"Invalid email address '{args['email']}'",
            field="email",
            error_code=ErrorCode.INVALID_FORMAT,
        )
    problem = _check_memberships(call, args) or _check_password(args)
    if problem is not None:
        return problem
    ensure_absent(call, KIND, email)

    record: Dict[str, Any] = {
        "name": args.get("name") or email.split("@")[0],
        "roles": list(args.get("roles", [])),
        "groups": list(args.get("groups", [])),
        "super": args.get("super", False),
        "status": "active",
        "data": dict(args.get("data") or {}),
    }
    if args.get("password"):
        record["password_hash"] = hash_password(args["password"])
    user = repository(call, KIND).create(email, record)
    logger.info("Created user %s", email)
    return {"user": public_view(user), "created": True}


def _handle_update(call: "ActionCall") -> Any:
    args = call.arguments
    handle = args["handle"]
    current = require(call, KIND, handle)
    problem = _check_memberships(call, args) or _check_password(args)
    if problem is not None:
        return problem

    changes: Dict[str, Any] = {}
    for name in ("name", "roles", "groups", "super"):
        if name in args:
            changes[name] = args[name]
    if "data" in args:
        changes["data"] = {**(current.data.get("data") or {}), **args["data"]}
    if args.get("password"):
        changes["password_hash"] = hash_password(args["password"])

    user = repository(call, KIND).update(handle, changes)
    updated = sorted("password" if name == "password_hash" else name for name in changes)
    return {"user": public_view(user), "updated_fields": updated}


def _handle_delete(call: "ActionCall") -> Dict[str, Any]:
    handle = call.arguments["handle"]
    repository(call, KIND).delete(handle)
    return {"deleted": True, "handle": handle}


def _set_status(call: "ActionCall", status: str) -> Dict[str, Any]:
    handle = call.arguments["handle"]
    current = require(call, KIND, handle)
    previous = current.data.get("status", "active")
    user = repository(call, KIND).update(handle, {"status": status})
    return {"user": public_view(user), "previous_status": previous, "status": status}


def _handle_activate(call: "ActionCall") -> Dict[str, Any]:
    return _set_status(call, "active")


def _handle_deactivate(call: "ActionCall") -> Dict[str, Any]:
    return _set_status(call, "inactive")


def _user_schema(*, create: bool) -> ToolSchema:
    builder = SchemaBuilder()
    if create:
        builder.string("email", "Email address, used as the user handle", required=True)
    else:
        builder.string("handle", "Email address of the user", required=True)
    return (
        builder.string("name", "Display name")
        .string("password", "Password (stored hashed)")
        .array("roles", "Role handles", items="string")
        .array("groups", "Group handles", items="string")
        .boolean("super", "Grant super-user access")
        .include(data_fragment("Additional profile fields"))
        .include(dry_run_fragment())
        .build()
    )


def _status_schema() -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", "Email address of the user", required=True)
        .include(dry_run_fragment())
        .build()
    )


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name="list",
            handler=_handle_list,
            summary=_ACTION_SUMMARY["list"],
            schema=list_schema(
                SchemaBuilder()
                .string("role", "Only users holding this role")
                .string("group", "Only users in this group")
                .build()
            ),
        ),
        ActionDefinition(
            name="get",
            handler=_handle_get,
            summary=_ACTION_SUMMARY["get"],
            schema=SchemaBuilder().string("handle", "Email address of the user", required=True).build(),
        ),
        ActionDefinition(
            name="create",
            handler=_handle_create,
            summary=_ACTION_SUMMARY["create"],
            schema=_user_schema(create=True),
            category=OperationCategory.DEFAULT,
            target_field="email",
        ),
        ActionDefinition(
            name="update",
            handler=_handle_update,
            summary=_ACTION_SUMMARY["update"],
            schema=_user_schema(create=False),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="delete",
            handler=_handle_delete,
            summary=_ACTION_SUMMARY["delete"],
            schema=delete_schema(handle_description="Email address of the user"),
            category=OperationCategory.DEFAULT,
            destructive=True,
        ),
        ActionDefinition(
            name="activate",
            handler=_handle_activate,
            summary=_ACTION_SUMMARY["activate"],
            schema=_status_schema(),
            category=OperationCategory.DEFAULT,
        ),
        ActionDefinition(
            name="deactivate",
            handler=_handle_deactivate,
            summary=_ACTION_SUMMARY["deactivate"],
            schema=_status_schema(),
            category=OperationCategory.DEFAULT,
        ),
    ]
    return ActionRouter(tool_name="cms-users", actions=definitions)


def build_users_tool() -> ToolDefinition:
    return ToolDefinition(
        name="cms-users",
        description="Manage users: list, get, create, update, delete, activate, deactivate.",
        domain=KIND,
        router=_build_router(),
    )
