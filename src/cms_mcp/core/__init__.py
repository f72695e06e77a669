"""Shared building blocks for cms-mcp tools: responses, schemas, validation,
authorization, rate limiting, cache invalidation and the Antlers linter."""

from cms_mcp.core.antlers import LintReport, lint_template
from cms_mcp.core.responses import ToolResponse, error_response, success_response
from cms_mcp.core.schema import SchemaBuilder, ToolSchema
from cms_mcp.core.validation import validate_arguments

__all__ = [
    "LintReport",
    "SchemaBuilder",
    "ToolResponse",
    "ToolSchema",
    "error_response",
    "lint_template",
    "success_response",
    "validate_arguments",
]
