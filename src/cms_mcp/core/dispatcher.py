"""Tool invocation pipeline.

``Dispatcher.invoke`` runs one call through a fixed sequence of stages:

    resolve tool -> resolve action -> validate -> authorize -> rate limit
    -> dry-run / confirmation gate -> handler -> cache invalidation -> envelope

Every stage that rejects the call produces an error envelope; no exception
escapes ``invoke``. Handlers receive an ``ActionCall`` and return either a
mapping (the success payload) or a ``ToolResponse`` for expected failures.
"""

from __future__ import annotations

import logging
import platform
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple

from cms_mcp.config import DomainSettings, ServerConfig, get_config
from cms_mcp.core.authorization import AuthDecision, AuthorizationPolicy, AuthState, CallerContext
from cms_mcp.core.cache import CacheInvalidationPolicy, CacheInvalidator
from cms_mcp.core.context import bind_action, sync_request_context
from cms_mcp.core.observability import (
    AuditLogger,
    MetricsCollector,
    get_audit_logger,
    get_metrics,
    sanitize_arguments,
)
from cms_mcp.core.rate_limit import CounterStore, FixedWindowRateLimiter
from cms_mcp.core.repository import ConflictError, ContentStore, NotFoundError
from cms_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    ToolResponse,
    build_meta,
    conflict_error,
    error_response,
    internal_error,
    not_found_error,
    rate_limit_error,
    success_response,
    unsupported_action_error,
    validation_error,
)
from cms_mcp.core.validation import validate_arguments
from cms_mcp.tools.router import ActionDefinition, ActionRouterError

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.tools.registry import ToolRegistry
    from cms_mcp.tools.router import ToolDefinition

logger = logging.getLogger(__name__)


def default_versions(config: ServerConfig) -> Dict[str, str]:
    return {
        "server": config.server_version or "unknown",
        "cms": config.cms_version or "unknown",
        "python": platform.python_version() or "unknown",
    }


@dataclass
class ToolRuntime:
    """Collaborators shared by every invocation.

    Built once at startup and passed to handlers through ``ActionCall``.
    """

    config: ServerConfig
    store: ContentStore
    policy: AuthorizationPolicy
    rate_limiter: FixedWindowRateLimiter
    cache_policy: CacheInvalidationPolicy
    audit: AuditLogger = field(default_factory=get_audit_logger)
    metrics: MetricsCollector = field(default_factory=get_metrics)
    version_provider: Optional[Callable[[], Mapping[str, str]]] = None
    registry: Optional["ToolRegistry"] = None

    @classmethod
    def create(
        cls,
        config: Optional[ServerConfig] = None,
        *,
        store: Optional[ContentStore] = None,
        invalidator: Optional[CacheInvalidator] = None,
        counter_store: Optional[CounterStore] = None,
        registry: Optional["ToolRegistry"] = None,
    ) -> "ToolRuntime":
        config = config or get_config()
        return cls(
            config=config,
            store=store if store is not None else ContentStore.in_memory(),
            policy=AuthorizationPolicy(access_capability=config.security.access_capability),
            rate_limiter=FixedWindowRateLimiter(counter_store),
            cache_policy=CacheInvalidationPolicy(invalidator),
            registry=registry,
        )

    def versions(self) -> Dict[str, str]:
        versions = default_versions(self.config)
        if self.version_provider is not None:
            try:
                versions.update({k: str(v) for k, v in self.version_provider().items()})
            except Exception as exc:
                logger.warning("Version lookup failed: %s", exc)
        return versions


@dataclass
class ActionCall:
    """Everything a handler needs for one invocation."""

    tool: str
    action: str
    arguments: Dict[str, Any]
    runtime: ToolRuntime
    caller: CallerContext

    @property
    def store(self) -> ContentStore:
        return self.runtime.store


class Dispatcher:
    """Runs tool invocations through the shared pipeline."""

    def __init__(self, registry: "ToolRegistry", runtime: ToolRuntime):
        self.registry = registry
        self.runtime = runtime
        if runtime.registry is None:
            runtime.registry = registry

    @property
    def config(self) -> ServerConfig:
        return self.runtime.config

    def invoke(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        context: Optional[CallerContext] = None,
    ) -> Dict[str, Any]:
        """Invoke tool ``name`` and return the serialised envelope."""
        context = context or CallerContext.cli()
        client_id = context.principal.identifier if context.principal is not None else None
        with sync_request_context(client_id=client_id, tool=name):
            tool = self.registry.get(name)
            if tool is None:
                logger.warning("Call to unknown tool %s", name)
                response = not_found_error(
                    "Tool",
                    name,
                    error_code=ErrorCode.TOOL_NOT_FOUND,
                    details={"available_tools": self.registry.names()},
                    remediation="Call one of the registered tools.",
                )
                action = None
            else:
                action = arguments.get("action") if isinstance(arguments, Mapping) else None
                response = self._invoke_tool(tool, arguments, context)

            response.meta = {
                **build_meta(
                    name,
                    action=action if isinstance(action, str) else None,
                    versions=self.runtime.versions(),
                ),
                **response.meta,
            }
            return response.to_dict()

    def _invoke_tool(
        self,
        tool: "ToolDefinition",
        arguments: Optional[Mapping[str, Any]],
        context: CallerContext,
    ) -> ToolResponse:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            return validation_error(
                "Invalid arguments: arguments must be a JSON object",
                field="arguments",
            )

        action = arguments.get("action")
        try:
            definition = tool.router.resolve(action)
        except ActionRouterError as exc:
            if action is None or (isinstance(action, str) and not action.strip()):
                return validation_error(
                    "Missing required fields: action",
                    field="action",
                    error_code=ErrorCode.MISSING_REQUIRED,
                    details={"allowed_actions": exc.allowed_actions},
                    remediation=f"Use one of: {', '.join(exc.allowed_actions)}",
                )
            return unsupported_action_error(tool.name, str(action), exc.allowed_actions)

        bind_action(definition.name)
        settings = self.config.domain(tool.domain)
        audit_enabled = settings.audit_logging
        started = time.perf_counter()

        if audit_enabled:
            self.runtime.audit.tool_started(
                tool.name,
                definition.name,
                domain=tool.domain,
                principal=context.principal_id,
                mode=context.mode.value,
                arguments=sanitize_arguments(dict(arguments)),
            )

        response, outcome = self._run_stages(tool, definition, arguments, context, settings)

        duration_ms = (time.perf_counter() - started) * 1000
        if audit_enabled:
            self.runtime.audit.tool_finished(
                tool.name,
                definition.name,
                outcome=outcome,
                duration_ms=duration_ms,
                error=response.error,
                principal=context.principal_id,
            )
        labels = {"tool": tool.name, "action": definition.name, "outcome": outcome}
        self.runtime.metrics.counter("tool_calls", labels=labels)
        self.runtime.metrics.timer("tool_duration_ms", duration_ms, labels=labels)
        return response

    def _run_stages(
        self,
        tool: "ToolDefinition",
        definition: ActionDefinition,
        arguments: Mapping[str, Any],
        context: CallerContext,
        settings: DomainSettings,
    ) -> Tuple[ToolResponse, str]:
        raw = {key: value for key, value in arguments.items() if key != "action"}
        validation = validate_arguments(definition.schema, raw)
        if not validation.ok:
            return validation.to_response(), "validation_error"

        try:
            decision = self.runtime.policy.authorize(
                context,
                tool.domain,
                definition.name,
                web_enabled=settings.web_enabled,
                overrides=settings.capabilities,
            )
        except Exception as exc:
            logger.exception("Authorization check failed for %s.%s", tool.name, definition.name)
            return internal_error(f"Authorization check failed: {exc}"), "error"
        if not decision.allowed:
            self._audit_denial(tool.name, decision, context)
            return decision.to_response(), "denied"

        if not context.is_cli:
            try:
                limit = self.runtime.rate_limiter.hit(
                    tool.name,
                    definition.name,
                    context.mode.value,
                    context.principal_id,
                    self.config.rate_limit_for(tool.domain),
                )
            except Exception as exc:
                logger.exception("Rate limit check failed for %s.%s", tool.name, definition.name)
                return internal_error(f"Rate limit check failed: {exc}"), "error"
            if not limit.allowed:
                return (
                    rate_limit_error(limit.limit, limit.reset_in, remaining=limit.remaining),
                    "rate_limited",
                )

        args = validation.arguments
        if definition.mutating and args.get("dry_run"):
            return (
                success_response(
                    dry_run=True,
                    action=definition.name,
                    target=args.get(definition.target_field),
                    arguments=sanitize_arguments(args),
                ),
                "success",
            )

        if (
            definition.destructive
            and self.config.security.require_confirmation
            and not args.get("confirm")
        ):
            return (
                validation_error(
                    f"Confirmation required: {definition.name} is destructive",
                    field="confirm",
                    error_code=ErrorCode.CONFIRMATION_REQUIRED,
                    remediation="Retry with confirm=true, or dry_run=true to preview.",
                ),
                "validation_error",
            )

        call = ActionCall(
            tool=tool.name,
            action=definition.name,
            arguments=args,
            runtime=self.runtime,
            caller=context,
        )
        response = self._call_handler(definition, call)
        if not response.success:
            return response, "error"

        if definition.mutating:
            report = self.runtime.cache_policy.apply(definition.category)
            response.data.update(report.to_payload())
        return response, "success"

    def _call_handler(self, definition: ActionDefinition, call: ActionCall) -> ToolResponse:
        started = time.perf_counter()
        try:
            result = definition.handler(call)
            response = result if isinstance(result, ToolResponse) else success_response(result)
        except NotFoundError as exc:
            response = error_response(
                f"{definition.name} failed: {exc}",
                error_code=ErrorCode.NOT_FOUND,
                error_type=ErrorType.NOT_FOUND,
                details={"resource_type": exc.kind, "resource_id": exc.handle},
            )
        except ConflictError as exc:
            response = conflict_error(
                f"{definition.name} failed: {exc}",
                details={"resource_type": exc.kind, "resource_id": exc.handle},
            )
        except Exception as exc:
            logger.exception("Unhandled error in %s.%s", call.tool, definition.name)
            response = internal_error(f"{definition.name} failed: {exc}")

        elapsed = time.perf_counter() - started
        if elapsed > self.config.slow_operation_threshold:
            logger.warning(
                "Slow operation %s.%s took %.2fs", call.tool, definition.name, elapsed
            )
        return response

    def _audit_denial(self, tool: str, decision: AuthDecision, context: CallerContext) -> None:
        audit = self.runtime.audit
        if decision.state is AuthState.UNAUTHENTICATED:
            audit.auth_failure(
                decision.reason, tool=tool, action=decision.action, mode=context.mode.value
            )
        else:
            audit.permission_denied(
                decision.capability or "",
                tool=tool,
                action=decision.action,
                domain=decision.domain,
                principal=context.principal_id,
                reason=decision.reason,
            )
