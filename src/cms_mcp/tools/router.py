"""Action routing for multiplexed resource tools.

Each resource tool exposes a single protocol-level tool whose required
``action`` argument selects one ``ActionDefinition``. Every router also
answers the built-in ``help`` action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from cms_mcp.core.cache import OperationCategory
from cms_mcp.core.schema import SchemaBuilder, ToolSchema, merge_schemas

logger = logging.getLogger(__name__)

HELP_ACTION = "help"

ActionHandler = Callable[..., Any]


class ActionRouterError(ValueError):
    """Raised when an action name does not resolve to a definition."""

    def __init__(self, message: str, *, allowed_actions: Sequence[str]):
        super().__init__(message)
        self.allowed_actions = list(allowed_actions)


@dataclass(frozen=True)
class ActionDefinition:
    """One action of a routed tool.

    Attributes:
        name: Action name as sent in the ``action`` argument
        handler: ``handler(call)`` returning a mapping or ToolResponse
        summary: One-line description listed by ``help``
        schema: Arguments accepted by this action
        category: Cache invalidation category; None for read-only actions
        destructive: Requires confirmation before running
        target_field: Argument echoed as the target of a dry run
    """

    name: str
    handler: ActionHandler
    summary: str
    schema: ToolSchema = field(default_factory=lambda: SchemaBuilder().build())
    category: Optional[OperationCategory] = None
    destructive: bool = False
    target_field: str = "handle"

    @property
    def mutating(self) -> bool:
        return self.category is not None


class ActionRouter:
    """Maps action names to definitions for one tool."""

    def __init__(self, tool_name: str, actions: Iterable[ActionDefinition]):
        self.tool_name = tool_name
        self._actions: Dict[str, ActionDefinition] = {}
        for definition in actions:
            if definition.name in self._actions or definition.name == HELP_ACTION:
                raise ValueError(f"Duplicate action '{definition.name}' for {tool_name}")
            self._actions[definition.name] = definition
        self._actions[HELP_ACTION] = ActionDefinition(
            name=HELP_ACTION,
            handler=self._help,
            summary="List actions with their summaries and argument schemas",
        )

    def allowed_actions(self) -> List[str]:
        return list(self._actions)

    def definitions(self) -> List[ActionDefinition]:
        return list(self._actions.values())

    def resolve(self, action: Any) -> ActionDefinition:
        if not isinstance(action, str) or not action.strip():
            raise ActionRouterError(
                f"Missing action for {self.tool_name}", allowed_actions=self.allowed_actions()
            )
        definition = self._actions.get(action.strip().lower())
        if definition is None:
            raise ActionRouterError(
                f"Unsupported {self.tool_name} action '{action}'",
                allowed_actions=self.allowed_actions(),
            )
        return definition

    def _help(self, call: Any = None) -> Dict[str, Any]:
        return {
            "tool": self.tool_name,
            "actions": [
                {
                    "name": definition.name,
                    "summary": definition.summary,
                    "mutating": definition.mutating,
                    "destructive": definition.destructive,
                    "schema": definition.schema.to_json_schema(),
                }
                for definition in self._actions.values()
            ],
        }


@dataclass
class ToolDefinition:
    """A registrable tool: protocol name, description and action router."""

    name: str
    description: str
    domain: str
    router: ActionRouter

    def input_schema(self) -> Dict[str, Any]:
        """Union of every action's parameters plus the required ``action`` enum."""
        merged = merge_schemas(d.schema for d in self.router.definitions())
        schema = (
            SchemaBuilder()
            .string(
                "action",
                "Operation to perform",
                required=True,
                enum=self.router.allowed_actions(),
            )
            .include(merged)
            .build()
        )
        return schema.to_json_schema()

    def schema_defects(self) -> List[str]:
        defects: List[str] = []
        for definition in self.router.definitions():
            defects.extend(f"{definition.name}: {d}" for d in definition.schema.defects())
        return defects
