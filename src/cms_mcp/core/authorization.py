"""Caller context and authorization policy.

Two caller modes exist. ``cli`` callers are local processes that already
passed OS-level trust and are always authorized. ``remote`` callers must
carry a resolved ``Principal`` that holds the capability required by the
requested action on the requested resource domain.

Capabilities are plain strings such as ``"edit entries"``. Each resource
domain owns one ``CapabilityTable``; actions missing from a table fall back
to ``"{action} {resource}"`` so every action maps to exactly one capability.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional

from cms_mcp.core.responses import (
    ErrorCode,
    ToolResponse,
    forbidden_error,
    unauthorized_error,
)

logger = logging.getLogger(__name__)


class CallerMode(str, Enum):
    CLI = "cli"
    REMOTE = "remote"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a remote call.

    ``can`` consults ``checker`` when one is supplied (for host systems with
    their own permission engine), otherwise the static capability set.
    """

    identifier: str
    capabilities: FrozenSet[str] = frozenset()
    super_user: bool = False
    checker: Optional[Callable[[str], bool]] = field(default=None, compare=False)

    @classmethod
    def with_capabilities(cls, identifier: str, capabilities: Iterable[str] = (), **kwargs) -> "Principal":
        return cls(identifier=identifier, capabilities=frozenset(capabilities), **kwargs)

    def can(self, capability: str) -> bool:
        if self.super_user:
            return True
        if self.checker is not None:
            return bool(self.checker(capability))
        return capability in self.capabilities


@dataclass(frozen=True)
class CallerContext:
    """Resolved identity and trust level for one invocation."""

    mode: CallerMode
    principal: Optional[Principal] = None

    @classmethod
    def cli(cls, principal: Optional[Principal] = None) -> "CallerContext":
        return cls(mode=CallerMode.CLI, principal=principal)

    @classmethod
    def remote(cls, principal: Optional[Principal] = None) -> "CallerContext":
        return cls(mode=CallerMode.REMOTE, principal=principal)

    @property
    def is_cli(self) -> bool:
        return self.mode is CallerMode.CLI

    @property
    def principal_id(self) -> str:
        return self.principal.identifier if self.principal is not None else "anonymous"


class AuthState(str, Enum):
    UNCHECKED = "unchecked"
    AUTHORIZED = "authorized"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class AuthDecision:
    """Result of an authorization check.

    ``capability`` is kept for the audit trail and never reaches the caller.
    """

    state: AuthState
    action: str = ""
    domain: str = ""
    capability: Optional[str] = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.state is AuthState.AUTHORIZED

    def to_response(self) -> ToolResponse:
        if self.state is AuthState.UNAUTHENTICATED:
            return unauthorized_error()
        if self.reason == "tool_disabled":
            return forbidden_error(
                f"Permission denied: the {self.domain} tool is not available to remote callers",
                error_code=ErrorCode.TOOL_DISABLED,
                details={"action": self.action, "resource": self.domain},
                remediation="Enable remote access for this tool domain in the server configuration.",
            )
        return forbidden_error(
            f"Permission denied: cannot {self.action} {self.domain}",
            details={"action": self.action, "resource": self.domain},
        )


class CapabilityTable:
    """Deterministic action -> capability mapping for one resource domain."""

    def __init__(self, domain: str, rules: Mapping[str, str], *, resource: Optional[str] = None):
        self.domain = domain
        self.resource = resource or domain
        self.rules = MappingProxyType(dict(rules))

    def capability_for(self, action: str, overrides: Optional[Mapping[str, str]] = None) -> str:
        if overrides and action in overrides:
            return overrides[action]
        if action in self.rules:
            return self.rules[action]
        return f"{action} {self.resource}"


def _crud_table(
    domain: str,
    *,
    view: str,
    create: str,
    update: str,
    delete: str,
    resource: Optional[str] = None,
    **extra: str,
) -> CapabilityTable:
    rules = {
        "help": view,
        "list": view,
        "get": view,
        "create": create,
        "update": update,
        "delete": delete,
    }
    rules.update(extra)
    return CapabilityTable(domain, rules, resource=resource)


DEFAULT_CAPABILITY_TABLES: Mapping[str, CapabilityTable] = MappingProxyType(
    {
        "collections": _crud_table(
            "collections",
            view="view collections",
            create="configure collections",
            update="configure collections",
            delete="configure collections",
        ),
        "entries": _crud_table(
            "entries",
            view="view entries",
            create="create entries",
            update="edit entries",
            delete="delete entries",
            publish="publish entries",
            unpublish="publish entries",
        ),
        "blueprints": _crud_table(
            "blueprints",
            view="configure fields",
            create="configure fields",
            update="configure fields",
            delete="configure fields",
        ),
        "globals": _crud_table(
            "globals",
            view="view globals",
            create="configure globals",
            update="edit globals",
            delete="configure globals",
        ),
        "forms": _crud_table(
            "forms",
            view="view forms",
            create="configure forms",
            update="configure forms",
            delete="configure forms",
        ),
        "roles": _crud_table(
            "roles",
            view="view roles",
            create="create roles",
            update="edit roles",
            delete="delete roles",
        ),
        "sites": _crud_table(
            "sites",
            view="view sites",
            create="configure sites",
            update="configure sites",
            delete="configure sites",
        ),
        "users": _crud_table(
            "users",
            view="view users",
            create="create users",
            update="edit users",
            delete="delete users",
            activate="edit users",
            deactivate="edit users",
        ),
        "groups": _crud_table(
            "groups",
            view="view user groups",
            create="create user groups",
            update="edit user groups",
            delete="delete user groups",
            resource="user groups",
        ),
        "templates": CapabilityTable(
            "templates", {"help": "view templates", "lint": "view templates"}
        ),
        "system": CapabilityTable(
            "system",
            {
                "help": "access utilities",
                "info": "access utilities",
                "clear_cache": "access utilities",
                "rate_limit_status": "access utilities",
            },
        ),
    }
)


class AuthorizationPolicy:
    """Decides whether a caller may run ``action`` on ``domain``.

    Args:
        tables: Capability table per domain (defaults to DEFAULT_CAPABILITY_TABLES)
        access_capability: Capability every remote principal must hold in
            addition to the action capability (None disables the check)
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, CapabilityTable]] = None,
        *,
        access_capability: Optional[str] = None,
    ):
        self._tables: Dict[str, CapabilityTable] = dict(
            tables if tables is not None else DEFAULT_CAPABILITY_TABLES
        )
        self.access_capability = access_capability or None

    def table_for(self, domain: str) -> CapabilityTable:
        table = self._tables.get(domain)
        if table is None:
            table = CapabilityTable(domain, {})
            self._tables[domain] = table
        return table

    def required_capability(
        self,
        domain: str,
        action: str,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> str:
        return self.table_for(domain).capability_for(action, overrides)

    def authorize(
        self,
        context: CallerContext,
        domain: str,
        action: str,
        *,
        web_enabled: bool = True,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> AuthDecision:
        """Run the authorization state machine for one invocation.

        CLI callers short-circuit to AUTHORIZED. Remote callers need a
        principal, remote access enabled for the domain, the optional
        global access capability, and the action capability.
        """
        capability = self.required_capability(domain, action, overrides)

        if context.mode is CallerMode.CLI:
            return AuthDecision(AuthState.AUTHORIZED, action, domain, capability, "cli")

        principal = context.principal
        if principal is None:
            return AuthDecision(
                AuthState.UNAUTHENTICATED, action, domain, capability, "no_principal"
            )

        if not web_enabled:
            return AuthDecision(AuthState.UNAUTHORIZED, action, domain, capability, "tool_disabled")

        if self.access_capability and not principal.can(self.access_capability):
            return AuthDecision(
                AuthState.UNAUTHORIZED, action, domain, self.access_capability, "missing_access"
            )

        if not principal.can(capability):
            logger.debug(
                "Principal %s lacks capability for %s %s", principal.identifier, action, domain
            )
            return AuthDecision(
                AuthState.UNAUTHORIZED, action, domain, capability, "missing_capability"
            )

        return AuthDecision(AuthState.AUTHORIZED, action, domain, capability, "granted")
