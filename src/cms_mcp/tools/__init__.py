"""Action-routed resource tools."""

from __future__ import annotations

from cms_mcp.tools.blueprints import build_blueprints_tool
from cms_mcp.tools.collections import build_collections_tool
from cms_mcp.tools.entries import build_entries_tool
from cms_mcp.tools.forms import build_forms_tool
from cms_mcp.tools.globals import build_globals_tool
from cms_mcp.tools.groups import build_groups_tool
from cms_mcp.tools.registry import ToolRegistrationError, ToolRegistry
from cms_mcp.tools.roles import build_roles_tool
from cms_mcp.tools.sites import build_sites_tool
from cms_mcp.tools.system import build_system_tool
from cms_mcp.tools.templates import build_templates_tool
from cms_mcp.tools.users import build_users_tool

TOOL_BUILDERS = (
    build_collections_tool,
    build_entries_tool,
    build_blueprints_tool,
    build_globals_tool,
    build_forms_tool,
    build_roles_tool,
    build_sites_tool,
    build_users_tool,
    build_groups_tool,
    build_templates_tool,
    build_system_tool,
)


def register_tools(registry: ToolRegistry) -> ToolRegistry:
    """Register every resource tool."""
    for builder in TOOL_BUILDERS:
        registry.register(builder())
    return registry


def build_default_registry() -> ToolRegistry:
    return register_tools(ToolRegistry())


__all__ = [
    "TOOL_BUILDERS",
    "ToolRegistrationError",
    "ToolRegistry",
    "build_default_registry",
    "register_tools",
]
