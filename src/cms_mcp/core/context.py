"""Per-invocation context shared by logging, audit and response metadata.

The dispatcher opens one context per tool call. While it is open, log
records, audit events and envelope ``meta`` blocks read the correlation id,
the calling principal and the tool/action being served from here instead of
having them threaded through every function signature.

    with sync_request_context(client_id="editor@example.com", tool="cms-entries") as ctx:
        bind_action("publish")
        ...
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional

ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class RequestContext:
    """Immutable view of the invocation being served.

    Attributes:
        correlation_id: ``req_<12 hex>`` id, echoed as ``meta.request_id``
        client_id: Principal identifier, ``"anonymous"`` when unknown
        tool: Tool name once resolved
        action: Action name once resolved
        start_time: ``time.time()`` at entry; 0 outside an invocation
    """

    correlation_id: str = ""
    client_id: str = ANONYMOUS
    tool: Optional[str] = None
    action: Optional[str] = None
    start_time: float = 0.0

    @property
    def active(self) -> bool:
        return self.start_time > 0

    @property
    def elapsed_ms(self) -> float:
        if not self.active:
            return 0.0
        return max((time.time() - self.start_time) * 1000, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "client_id": self.client_id,
            "tool": self.tool,
            "action": self.action,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


_IDLE = RequestContext()
_current: ContextVar[RequestContext] = ContextVar("cms_mcp_request", default=_IDLE)


def generate_correlation_id(prefix: str = "req") -> str:
    """Return ``<prefix>_<12 hex chars>``."""
    return f"{prefix}_{secrets.token_hex(6)}"


@contextmanager
def sync_request_context(
    *,
    correlation_id: Optional[str] = None,
    client_id: Optional[str] = None,
    tool: Optional[str] = None,
) -> Iterator[RequestContext]:
    """Open an invocation context for the duration of the ``with`` block.

    A correlation id is generated when none is given. The previous context
    is restored on exit, including when the block raises.
    """
    ctx = RequestContext(
        correlation_id=correlation_id or generate_correlation_id(),
        client_id=client_id or ANONYMOUS,
        tool=tool,
        start_time=time.time(),
    )
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def bind_action(action: str) -> RequestContext:
    """Record the resolved action on the open context."""
    ctx = replace(_current.get(), action=action)
    _current.set(ctx)
    return ctx


def get_current_context() -> RequestContext:
    return _current.get()


def get_correlation_id() -> str:
    """Correlation id of the open invocation, ``""`` outside one."""
    return _current.get().correlation_id
