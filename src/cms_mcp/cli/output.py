"""JSON output helpers for the cms-mcp CLI.

The CLI emits the same minified envelopes the MCP tools return, so output
can be piped through ``jq`` or parsed by an agent without special casing.
"""

import json
import sys
from typing import Any, Mapping, NoReturn, Optional

from cms_mcp.core.responses import build_meta, error_response


def emit(data: Any) -> None:
    """Emit JSON to stdout in minified form."""
    print(json.dumps(data, separators=(",", ":"), default=str))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    command: str = "cli",
) -> NoReturn:
    """Emit an error envelope to stderr and exit with code 1.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        meta=build_meta(command),
    )
    print(json.dumps(response.to_dict(), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)
