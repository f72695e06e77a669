"""Redaction, audit trail and metrics for dispatched tool calls.

Audit events and metrics are ordinary log records on two child loggers, so
operators can route them without extra infrastructure:

    cms_mcp.core.observability.audit    INFO   "AUDIT: <event_type>"   record.audit
    cms_mcp.core.observability.metrics  DEBUG  "METRIC: cms_mcp.<name>" record.metric

Arguments must go through ``sanitize_arguments`` before they are attached to
an audit event.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Final, List, Mapping, Optional, Pattern, Tuple, Union

from cms_mcp.core.context import ANONYMOUS, get_current_context

logger = logging.getLogger(__name__)

REDACTION_MARKER: Final[str] = "[REDACTED]"
SENSITIVE_KEY_FRAGMENTS: Final[Tuple[str, ...]] = ("password", "secret", "token", "key")
MAX_LOGGED_STRING_LENGTH: Final[int] = 1000
TRUNCATION_SUFFIX: Final[str] = "... [TRUNCATED]"
_DEPTH_EXCEEDED: Final[str] = "[MAX_DEPTH_EXCEEDED]"

# (label, pattern) for credentials that turn up inside free text.
SENSITIVE_PATTERNS: Final[List[Tuple[str, str]]] = [
    ("BEARER_TOKEN", r"(?i)bearer\s+[a-z0-9_\-.=]+"),
    ("PASSWORD", r"(?i)\b(?:password|passwd|pwd)\s*[:=]\s*['\"]?[^\s'\"]{4,}['\"]?"),
    ("API_KEY", r"(?i)\bapi[_-]?key\s*[:=]\s*['\"]?[a-z0-9_\-]{20,}['\"]?"),
    ("AWS_ACCESS_KEY", r"AKIA[0-9A-Z]{16}"),
    ("PRIVATE_KEY", r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"),
    ("GITHUB_TOKEN", r"gh[pousr]_[A-Za-z0-9]{36,}"),
    ("GITLAB_TOKEN", r"glpat-[A-Za-z0-9\-]{20,}"),
]

_COMPILED: List[Tuple[str, Pattern[str]]] = [
    (label, re.compile(pattern)) for label, pattern in SENSITIVE_PATTERNS
]


def is_sensitive_key(key: Any) -> bool:
    """True when a mapping key names a credential-like value."""
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def _redact_text(text: str, marker_format: str) -> str:
    for label, pattern in _COMPILED:
        text = pattern.sub(marker_format.format(label=label), text)
    return text


def redact_sensitive_data(
    data: Any,
    *,
    marker_format: str = "[REDACTED:{label}]",
    max_depth: int = 10,
) -> Any:
    """Replace credential-looking substrings anywhere inside ``data``.

    Mapping keys are kept; only string values are rewritten. Tuples stay
    tuples. Structures nested deeper than ``max_depth`` are replaced
    wholesale.
    """
    if max_depth <= 0:
        return _DEPTH_EXCEEDED
    if isinstance(data, str):
        return _redact_text(data, marker_format)
    if isinstance(data, Mapping):
        return {
            k: redact_sensitive_data(v, marker_format=marker_format, max_depth=max_depth - 1)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        items = [
            redact_sensitive_data(v, marker_format=marker_format, max_depth=max_depth - 1)
            for v in data
        ]
        return type(data)(items) if isinstance(data, tuple) else items
    return data


def sanitize_arguments(
    data: Any,
    *,
    marker: str = REDACTION_MARKER,
    max_string_length: int = MAX_LOGGED_STRING_LENGTH,
    max_depth: int = 10,
) -> Any:
    """Copy of tool arguments that is safe to log.

    >>> sanitize_arguments({"password": "secret123", "title": "x"})
    {'password': '[REDACTED]', 'title': 'x'}
    """
    if max_depth <= 0:
        return _DEPTH_EXCEEDED

    def walk(value: Any) -> Any:
        return sanitize_arguments(
            value, marker=marker, max_string_length=max_string_length, max_depth=max_depth - 1
        )

    if isinstance(data, Mapping):
        return {k: marker if is_sensitive_key(k) else walk(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [walk(item) for item in data]
    if isinstance(data, str):
        text = _redact_text(data, "[REDACTED:{label}]")
        if len(text) > max_string_length:
            return text[:max_string_length] + TRUNCATION_SUFFIX
        return text
    return data


class AuditEventType(Enum):
    TOOL_INVOCATION = "tool_invocation"
    AUTH_FAILURE = "auth_failure"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMIT = "rate_limit"
    CACHE_INVALIDATION = "cache_invalidation"
    SERVER_LIFECYCLE = "server_lifecycle"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AuditEvent:
    """One audit trail entry.

    ``correlation_id`` and ``client_id`` default to the open invocation
    context; an anonymous client is left out of the record.
    """

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utcnow)
    correlation_id: Optional[str] = None
    client_id: Optional[str] = None

    def __post_init__(self) -> None:
        ctx = get_current_context()
        if self.correlation_id is None and ctx.correlation_id:
            self.correlation_id = ctx.correlation_id
        if self.client_id is None and ctx.client_id != ANONYMOUS:
            self.client_id = ctx.client_id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        for name in ("correlation_id", "client_id"):
            value = getattr(self, name)
            if value:
                data[name] = value
        return data


class AuditLogger:
    """Writes ``AuditEvent`` records to the audit logger."""

    def __init__(self, name: Optional[str] = None):
        self._logger = logging.getLogger(name or f"{__name__}.audit")

    def log(self, event: AuditEvent) -> None:
        self._logger.info("AUDIT: %s", event.event_type.value, extra={"audit": event.to_dict()})

    def _record(self, event_type: AuditEventType, **details: Any) -> None:
        self.log(AuditEvent(event_type=event_type, details=details))

    def tool_started(
        self,
        tool: str,
        action: Optional[str],
        *,
        domain: str,
        principal: str,
        mode: str,
        arguments: Mapping[str, Any],
    ) -> None:
        self._record(
            AuditEventType.TOOL_INVOCATION,
            phase="started",
            tool=tool,
            action=action,
            domain=domain,
            principal=principal,
            mode=mode,
            arguments=dict(arguments),
        )

    def tool_finished(
        self,
        tool: str,
        action: Optional[str],
        *,
        outcome: str,
        duration_ms: float,
        error: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Record the end of an invocation; any outcome but ``success`` is a failure."""
        succeeded = outcome == "success"
        extra = {"error": error} if error is not None else {}
        self._record(
            AuditEventType.TOOL_INVOCATION,
            phase="completed" if succeeded else "failed",
            tool=tool,
            action=action,
            outcome=outcome,
            success=succeeded,
            duration_ms=round(duration_ms, 2),
            **details,
            **extra,
        )

    def auth_failure(self, reason: str, **details: Any) -> None:
        self._record(AuditEventType.AUTH_FAILURE, reason=reason, **details)

    def permission_denied(self, capability: str, **details: Any) -> None:
        """The capability is recorded here and never in the caller's envelope."""
        self._record(AuditEventType.PERMISSION_DENIED, capability=capability, **details)

    def rate_limit(self, limit: Optional[int] = None, **details: Any) -> None:
        self._record(AuditEventType.RATE_LIMIT, limit=limit, **details)


_audit = AuditLogger()


def get_audit_logger() -> AuditLogger:
    return _audit


def audit_log(event_type: str, **details: Any) -> None:
    """Record an event by name.

    Names outside ``AuditEventType`` are kept as ``original_event_type`` on a
    ``tool_invocation`` event.
    """
    try:
        kind = AuditEventType(event_type)
    except ValueError:
        kind = AuditEventType.TOOL_INVOCATION
        details["original_event_type"] = event_type
    _audit.log(AuditEvent(event_type=kind, details=details))


class MetricType(Enum):
    COUNTER = "counter"
    TIMER = "timer"


@dataclass
class Metric:
    name: str
    value: Union[int, float]
    metric_type: MetricType
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "type": self.metric_type.value,
            "labels": self.labels,
            "timestamp": self.timestamp,
        }


class MetricsCollector:
    """Emits counters and timers as DEBUG records on the metrics logger."""

    def __init__(self, prefix: str = "cms_mcp"):
        self.prefix = prefix
        self._logger = logging.getLogger(f"{__name__}.metrics")

    def emit(self, metric: Metric) -> None:
        self._logger.debug(
            "METRIC: %s.%s", self.prefix, metric.name, extra={"metric": metric.to_dict()}
        )

    def counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self.emit(Metric(name, value, MetricType.COUNTER, dict(labels or {})))

    def timer(self, name: str, duration_ms: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.emit(Metric(name, round(duration_ms, 3), MetricType.TIMER, dict(labels or {})))


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    return _metrics
