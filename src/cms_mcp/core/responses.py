"""Result envelopes returned by every cms-mcp tool.

A call yields one of two flat JSON objects. On success the handler's
payload sits at the top level next to ``meta`` (and the cache report after a
mutation)::

    {"collection": {...}, "cache_cleared": true, "cleared_types": [...],
     "cache_details": {...}, "meta": {...}}

On failure the payload is replaced by the error fields::

    {"error": "Missing required fields: handle", "error_code": "MISSING_REQUIRED",
     "error_type": "validation", "remediation": "...", "details": {...}, "meta": {...}}

``meta`` is ``{tool, action?, timestamp, request_id?, versions}``. The two
shapes never mix: a success payload may not carry ``error`` or ``meta``. An
empty listing is a success; a missing resource is a NOT_FOUND failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from cms_mcp.core.context import get_correlation_id

logger = logging.getLogger(__name__)

RESERVED_SUCCESS_KEYS = frozenset({"error", "meta"})


class ErrorCode(str, Enum):
    """Stable ``error_code`` values clients can branch on."""

    # caller input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_REQUIRED = "MISSING_REQUIRED"
    INVALID_FORMAT = "INVALID_FORMAT"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"

    # lookups
    NOT_FOUND = "NOT_FOUND"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    BLUEPRINT_NOT_FOUND = "BLUEPRINT_NOT_FOUND"
    CONFLICT = "CONFLICT"

    # access control
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TOOL_DISABLED = "TOOL_DISABLED"

    # server side
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorType(str, Enum):
    """Coarse ``error_type`` category; the comment gives the retry advice."""

    VALIDATION = "validation"  # fix the arguments
    AUTHENTICATION = "authentication"  # supply credentials
    AUTHORIZATION = "authorization"  # needs a grant, do not retry
    NOT_FOUND = "not_found"  # check the handle
    CONFLICT = "conflict"  # re-read state first
    RATE_LIMIT = "rate_limit"  # retry after details.reset_in
    INTERNAL = "internal"  # retry with backoff


@dataclass
class ToolResponse:
    """Outcome of one invocation, prior to serialisation.

    ``data`` holds the domain payload for a success and the
    ``error_code``/``error_type``/``remediation``/``details`` fields for a
    failure. The dispatcher fills ``meta`` just before serialising.
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            envelope: Dict[str, Any] = dict(self.data)
        else:
            envelope = {"error": self.error or "Unknown error", **self.data}
        envelope["meta"] = dict(self.meta)
        return envelope


def build_meta(
    tool: str,
    *,
    action: Optional[str] = None,
    versions: Optional[Mapping[str, str]] = None,
    request_id: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """``meta`` block for an envelope; ``request_id`` defaults to the correlation id."""
    meta: Dict[str, Any] = {"tool": tool, "timestamp": datetime.now(timezone.utc).isoformat()}
    if action:
        meta["action"] = action
    request_id = request_id or get_correlation_id()
    if request_id:
        meta["request_id"] = request_id
    meta["versions"] = dict(versions or {})
    meta.update(extra or {})
    return meta


def success_response(
    data: Optional[Mapping[str, Any]] = None,
    *,
    meta: Optional[Mapping[str, Any]] = None,
    **fields: Any,
) -> ToolResponse:
    """Success carrying ``data`` merged with ``fields``.

    Raises:
        ValueError: the payload uses ``error`` or ``meta``.
    """
    payload = {**(data or {}), **fields}
    clash = sorted(RESERVED_SUCCESS_KEYS.intersection(payload))
    if clash:
        raise ValueError(f"Success payload uses reserved keys: {', '.join(clash)}")
    return ToolResponse(success=True, data=payload, meta=dict(meta or {}))


def _value(member: Union[Enum, str]) -> str:
    return member.value if isinstance(member, Enum) else member


def error_response(
    message: str,
    *,
    error_code: Optional[Union[ErrorCode, str]] = None,
    error_type: Optional[Union[ErrorType, str]] = None,
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> ToolResponse:
    """Failure envelope; code and type default to the internal-error pair.

    >>> error_response("Missing required fields: handle",
    ...                error_code=ErrorCode.MISSING_REQUIRED,
    ...                error_type=ErrorType.VALIDATION).to_dict()["error_type"]
    'validation'
    """
    payload: Dict[str, Any] = {
        "error_code": _value(error_code or ErrorCode.INTERNAL_ERROR),
        "error_type": _value(error_type or ErrorType.INTERNAL),
    }
    if remediation is not None:
        payload["remediation"] = remediation
    if details:
        payload["details"] = dict(details)
    return ToolResponse(success=False, data=payload, error=message, meta=dict(meta or {}))


def validation_error(
    message: str,
    *,
    field: Optional[str] = None,
    error_code: Union[ErrorCode, str] = ErrorCode.VALIDATION_ERROR,
    details: Optional[Mapping[str, Any]] = None,
    remediation: Optional[str] = None,
) -> ToolResponse:
    """Bad caller input; ``field`` is copied into ``details`` unless already there."""
    merged = dict(details or {})
    if field:
        merged.setdefault("field", field)
    return error_response(
        message,
        error_code=error_code,
        error_type=ErrorType.VALIDATION,
        details=merged,
        remediation=remediation,
    )


def not_found_error(
    resource_type: str,
    resource_id: str,
    *,
    error_code: Union[ErrorCode, str] = ErrorCode.NOT_FOUND,
    details: Optional[Mapping[str, Any]] = None,
    remediation: Optional[str] = None,
) -> ToolResponse:
    """``"<Type> '<id>' not found"``, e.g. ``not_found_error("Collection", "blog")``."""
    return error_response(
        f"{resource_type} '{resource_id}' not found",
        error_code=error_code,
        error_type=ErrorType.NOT_FOUND,
        details={"resource_type": resource_type, "resource_id": resource_id, **(details or {})},
        remediation=remediation or f"Verify the {resource_type.lower()} handle exists.",
    )


def conflict_error(
    message: str,
    *,
    details: Optional[Mapping[str, Any]] = None,
    remediation: Optional[str] = None,
) -> ToolResponse:
    return error_response(
        message,
        error_code=ErrorCode.CONFLICT,
        error_type=ErrorType.CONFLICT,
        details=details,
        remediation=remediation or "Use a different handle or update the existing resource.",
    )


def unauthorized_error(
    message: str = "Permission denied: Authentication required",
    *,
    remediation: Optional[str] = None,
) -> ToolResponse:
    """Remote call without a principal."""
    return error_response(
        message,
        error_code=ErrorCode.UNAUTHORIZED,
        error_type=ErrorType.AUTHENTICATION,
        remediation=remediation or "Provide valid authentication credentials.",
    )


def forbidden_error(
    message: str,
    *,
    error_code: Union[ErrorCode, str] = ErrorCode.FORBIDDEN,
    details: Optional[Mapping[str, Any]] = None,
    remediation: Optional[str] = None,
) -> ToolResponse:
    """Authenticated but not allowed. Never pass the capability in ``details``."""
    return error_response(
        message,
        error_code=error_code,
        error_type=ErrorType.AUTHORIZATION,
        details=details,
        remediation=remediation or "Ask an administrator for access to this operation.",
    )


def rate_limit_error(
    limit: int,
    retry_after_seconds: float,
    *,
    remaining: int = 0,
    message: str = "Rate limit exceeded. Please wait before trying again.",
) -> ToolResponse:
    wait = int(retry_after_seconds) + 1
    return error_response(
        message,
        error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
        error_type=ErrorType.RATE_LIMIT,
        details={"limit": limit, "remaining": remaining, "reset_in": round(retry_after_seconds, 2)},
        remediation=f"Wait {wait} seconds before retrying.",
    )


def internal_error(
    message: str,
    *,
    error_code: Union[ErrorCode, str] = ErrorCode.INTERNAL_ERROR,
    details: Optional[Mapping[str, Any]] = None,
) -> ToolResponse:
    return error_response(
        message,
        error_code=error_code,
        error_type=ErrorType.INTERNAL,
        details=details,
        remediation="Check server logs and retry.",
    )


def unsupported_action_error(
    tool: str,
    action: str,
    allowed_actions: Sequence[str],
) -> ToolResponse:
    """The router of ``tool`` has no ``action``."""
    allowed = ", ".join(allowed_actions)
    return error_response(
        f"Unsupported {tool} action '{action}'. Allowed actions: {allowed}",
        error_code=ErrorCode.UNSUPPORTED_ACTION,
        error_type=ErrorType.VALIDATION,
        remediation=f"Use one of: {allowed}",
        details={"action": action, "allowed_actions": list(allowed_actions)},
    )
