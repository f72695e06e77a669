"""
Integration tests for the cms-mcp CLI.

Commands run through click's CliRunner against a TOML config and a JSON
content snapshot written to a temporary working directory.
"""

import json

import pytest
from click.testing import CliRunner

from cms_mcp.cli.main import cli
from cms_mcp.config import get_config

pytestmark = pytest.mark.integration

CONFIG = """
[server]
name = "cli-test"
cms_version = "5.1.0"

[content]
snapshot = "content.json"
"""

SNAPSHOT = {
    "collections": {"blog": {"title": "Blog", "route": "/blog/{slug}"}},
    "blueprints": {"blog": {"title": "Blog Post", "fields": {"title": {"type": "text", "required": True}}}},
    "sites": {"default": {"name": "Default", "url": "/"}},
}


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.delenv("CMS_MCP_CONFIG_FILE", raising=False)
    monkeypatch.delenv("CMS_MCP_CONTENT_SNAPSHOT", raising=False)
    monkeypatch.delenv("CMS_MCP_SERVER_NAME", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "cms.toml").write_text(CONFIG)
    (tmp_path / "content.json").write_text(json.dumps(SNAPSHOT))
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ["--config", "cms.toml", *args])


def parse(result):
    return json.loads(result.output.strip().splitlines()[-1])


class TestToolsCommand:
    def test_lists_tools(self, runner, workspace):
        result = invoke(runner, "tools")
        assert result.exit_code == 0
        data = parse(result)
        assert data["count"] == 11
        entries = next(t for t in data["tools"] if t["name"] == "cms-entries")
        assert entries["domain"] == "entries"
        assert "publish" in entries["actions"]

    def test_single_tool_schema(self, runner, workspace):
        data = parse(invoke(runner, "tools", "--name", "cms-templates"))
        assert data["name"] == "cms-templates"
        assert data["input_schema"]["required"] == ["action"]
        assert "template" in data["input_schema"]["properties"]

    def test_unknown_tool(self, runner, workspace):
        result = invoke(runner, "tools", "--name", "cms-assets")
        assert result.exit_code == 1
        data = parse(result)
        assert data["error_code"] == "TOOL_NOT_FOUND"
        assert data["meta"]["tool"] == "tools"

    def test_config_is_installed_globally(self, runner, workspace):
        invoke(runner, "tools")
        assert get_config().server_name == "cli-test"


class TestCallCommand:
    """call runs one invocation as a local caller."""

    def test_reads_snapshot(self, runner, workspace):
        result = invoke(runner, "call", "cms-collections", "--args", '{"action": "list"}')
        assert result.exit_code == 0
        data = parse(result)
        assert [c["handle"] for c in data["collections"]] == ["blog"]
        assert data["meta"]["versions"]["cms"] == "5.1.0"

    def test_args_file(self, runner, workspace):
        (workspace / "args.json").write_text(json.dumps({"action": "get", "handle": "blog"}))
        data = parse(invoke(runner, "call", "cms-blueprints", "--args-file", "args.json"))
        assert data["blueprint"]["title"] == "Blog Post"

    def test_error_envelope_exits_nonzero(self, runner, workspace):
        result = invoke(runner, "call", "cms-collections", "--args", '{"action": "create", "title": "News"}')
        assert result.exit_code == 1
        assert parse(result)["error"] == "Missing required fields: handle"

    def test_destructive_call_from_cli(self, runner, workspace):
        args = json.dumps({"action": "delete", "handle": "blog", "confirm": True})
        data = parse(invoke(runner, "call", "cms-collections", "--args", args))
        assert data["deleted"] is True

    def test_invalid_json(self, runner, workspace):
        result = invoke(runner, "call", "cms-collections", "--args", "{action: list}")
        assert result.exit_code == 1
        data = parse(result)
        assert data["error_code"] == "INVALID_FORMAT"
        assert data["error"].startswith("Invalid JSON for --args")

    def test_args_must_be_object(self, runner, workspace):
        result = invoke(runner, "call", "cms-collections", "--args", '["list"]')
        assert parse(result)["error"] == "Invalid JSON for --args: expected an object"

    def test_both_argument_sources(self, runner, workspace):
        (workspace / "args.json").write_text("{}")
        result = invoke(runner, "call", "cms-system", "--args", "{}", "--args-file", "args.json")
        assert result.exit_code == 1
        assert parse(result)["error"] == "Use either --args or --args-file, not both"

    def test_without_arguments(self, runner, workspace):
        result = invoke(runner, "call", "cms-system")
        assert parse(result)["error"] == "Missing required fields: action"


class TestLintCommand:
    def test_clean_template(self, runner, workspace):
        (workspace / "post.antlers.html").write_text("<h1>{{ title }}</h1>")
        result = invoke(runner, "lint", "post.antlers.html", "--fields", '{"title": "text"}')
        assert result.exit_code == 0
        data = parse(result)
        assert data["valid"] is True
        assert data["path"] == "post.antlers.html"

    def test_errors_exit_nonzero(self, runner, workspace):
        (workspace / "post.antlers.html").write_text("{{ titel }}")
        result = invoke(runner, "lint", "post.antlers.html", "--fields", '{"title": "text"}')
        assert result.exit_code == 1
        data = parse(result)
        assert data["valid"] is False
        assert data["errors"][0]["code"] == "unknown_field"

    def test_strict_and_context(self, runner, workspace):
        (workspace / "list.antlers.html").write_text('<img src="/logo.png">{{ count }}')
        result = invoke(runner, "lint", "list.antlers.html", "--context", "collection", "--strict")
        data = parse(result)
        assert data["valid"] is True
        assert [w["code"] for w in data["warnings"]] == ["missing_alt_text"]

    def test_missing_file(self, runner, workspace):
        result = invoke(runner, "lint", "absent.html")
        assert result.exit_code == 2
