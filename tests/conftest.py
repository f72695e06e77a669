"""
Root pytest configuration and shared fixtures.

Provides a seeded in-memory content store, a dispatcher wired to it, caller
contexts for both modes and a controllable clock for rate-limit windows.
"""

import copy
from typing import Any, Callable, Dict, Optional

import pytest

import cms_mcp.config as config_module
from cms_mcp.config import ServerConfig
from cms_mcp.core.authorization import CallerContext, Principal
from cms_mcp.core.dispatcher import Dispatcher, ToolRuntime
from cms_mcp.core.rate_limit import InMemoryCounterStore
from cms_mcp.core.repository import ContentStore
from cms_mcp.tools import build_default_registry
from cms_mcp.tools.registry import ToolRegistry

SEED: Dict[str, Dict[str, Any]] = {
    "sites": {
        "default": {"name": "Default", "url": "/", "locale": "en_US", "lang": "en"},
    },
    "collections": {
        "blog": {"title": "Blog", "route": "/blog/{slug}", "dated": True},
        "pages": {"title": "Pages", "route": "/{slug}", "structured": True, "max_depth": 3},
    },
    "blueprints": {
        "blog": {
            "title": "Blog Post",
            "namespace": "collections.blog",
            "fields": {
                "title": {"type": "text", "required": True},
                "summary": {"type": "text", "required": True},
                "content": {"type": "markdown", "required": False},
                "published_on": {"type": "date", "required": False},
                "related_entries": {"type": "entries", "required": False},
            },
        },
    },
    "entries": {
        "blog:hello-world": {
            "collection": "blog",
            "slug": "hello-world",
            "title": "Hello World",
            "published": True,
            "data": {"summary": "First post"},
        },
        "blog:draft-post": {
            "collection": "blog",
            "slug": "draft-post",
            "title": "Draft Post",
            "published": False,
            "data": {"summary": "Work in progress"},
        },
    },
    "roles": {
        "editor": {"title": "Editor", "permissions": ["view entries", "edit entries"], "super": False},
    },
    "groups": {
        "staff": {"title": "Staff", "roles": ["editor"]},
    },
    "users": {
        "jane@example.com": {
            "name": "Jane",
            "roles": ["editor"],
            "groups": ["staff"],
            "super": False,
            "status": "active",
            "data": {},
        },
    },
    "globals": {
        "settings": {
            "title": "Settings",
            "values": {"tagline": "Hello", "phone": "555-0100"},
            "localizations": {"fr": {"tagline": "Bonjour"}},
        },
    },
    "forms": {
        "contact": {"title": "Contact", "store": True},
    },
}


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Keep the process-wide config from leaking between tests."""
    monkeypatch.setattr(config_module, "_config", None)


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(
        server_name="cms-mcp-test",
        server_version="0.1.0",
        cms_version="5.0.0",
        log_level="WARNING",
    )


@pytest.fixture
def store() -> ContentStore:
    store = ContentStore.in_memory()
    store.load_snapshot(copy.deepcopy(SEED))
    return store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counter_store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def registry() -> ToolRegistry:
    return build_default_registry()


@pytest.fixture
def runtime(config, store, counter_store, registry) -> ToolRuntime:
    return ToolRuntime.create(config, store=store, counter_store=counter_store, registry=registry)


@pytest.fixture
def dispatcher(registry, runtime) -> Dispatcher:
    return Dispatcher(registry, runtime)


@pytest.fixture
def cli_context() -> CallerContext:
    return CallerContext.cli()


@pytest.fixture
def editor() -> Principal:
    return Principal.with_capabilities(
        "editor@example.com",
        ["view entries", "edit entries", "create entries", "view collections"],
    )


@pytest.fixture
def remote_editor(editor) -> CallerContext:
    return CallerContext.remote(editor)


@pytest.fixture
def enable_remote(config) -> Callable[..., None]:
    """Expose the given tool domains to remote callers."""

    def _enable(*domains: str) -> None:
        for domain in domains:
            config.domain(domain).web_enabled = True

    return _enable


@pytest.fixture
def call(dispatcher) -> Callable[..., Dict[str, Any]]:
    """Invoke ``tool`` with ``action`` and keyword arguments; returns the envelope."""

    def _call(
        tool: str,
        action: Optional[str] = None,
        /,
        **arguments: Any,
    ) -> Dict[str, Any]:
        # ``context`` is the caller context only when it is a CallerContext;
        # otherwise it is a tool argument (e.g. the linter's ``context``).
        context = arguments.pop("context", None)
        if context is not None and not isinstance(context, CallerContext):
            arguments["context"] = context
            context = None
        if action is not None:
            arguments["action"] = action
        return dispatcher.invoke(tool, arguments, context or CallerContext.cli())

    return _call
