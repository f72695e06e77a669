"""Registry of the tools exposed to MCP clients."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional

from cms_mcp.tools.router import ToolDefinition

logger = logging.getLogger(__name__)

TOOL_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


class ToolRegistrationError(ValueError):
    """Raised for an invalid or duplicate tool registration."""


class ToolRegistry:
    """Name-keyed, insertion-ordered collection of ``ToolDefinition``."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> ToolDefinition:
        if not TOOL_NAME_PATTERN.fullmatch(tool.name or ""):
            raise ToolRegistrationError(
                f"Invalid tool name '{tool.name}': use 1-64 letters, digits, '_' or '-'"
            )
        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool '{tool.name}' is already registered")
        defects = tool.schema_defects()
        if defects:
            raise ToolRegistrationError(
                f"Tool '{tool.name}' has an invalid schema: " + "; ".join(defects)
            )
        self._tools[tool.name] = tool
        logger.debug("Registered tool %s (%d actions)", tool.name, len(tool.router.allowed_actions()))
        return tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
