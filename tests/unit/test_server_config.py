"""
Tests for ServerConfig loading from defaults, TOML and environment variables.
"""

import logging
from pathlib import Path

import pytest

from cms_mcp.config import (
    TOOL_DOMAINS,
    DomainSettings,
    RateLimitSettings,
    ServerConfig,
    get_config,
    set_config,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No CMS_MCP_* variables and no config file in the working directory."""
    for name in [
        "CMS_MCP_CONFIG_FILE",
        "CMS_MCP_LOG_LEVEL",
        "CMS_MCP_STRUCTURED_LOGGING",
        "CMS_MCP_SERVER_NAME",
        "CMS_MCP_CMS_VERSION",
        "CMS_MCP_CONTENT_SNAPSHOT",
        "CMS_MCP_FORCE_REMOTE_MODE",
        "CMS_MCP_ACCESS_CAPABILITY",
        "CMS_MCP_REQUIRE_CONFIRMATION",
        "CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS",
        "CMS_MCP_RATE_LIMIT_DECAY_SECONDS",
    ]:
        monkeypatch.delenv(name, raising=False)
    for domain in TOOL_DOMAINS:
        monkeypatch.delenv(f"CMS_MCP_{domain.upper()}_WEB_ENABLED", raising=False)
        monkeypatch.delenv(f"CMS_MCP_{domain.upper()}_AUDIT_LOGGING", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


TOML = """
[logging]
level = "debug"
structured = false

[server]
name = "studio"
cms_version = "5.2.0"
slow_operation_threshold = 2.5

[content]
snapshot = "content.json"

[security]
force_remote_mode = true
access_capability = "access mcp"
require_confirmation = false

[rate_limit]
max_attempts = 10
decay_seconds = 30

[tools.entries]
web_enabled = true
max_attempts = 5

[tools.entries.capabilities]
publish = "edit entries"
"""


class TestDefaults:
    def test_defaults(self, clean_env):
        config = ServerConfig.from_env()
        assert config.log_level == "INFO"
        assert config.structured_logging is True
        assert config.server_name == "cms-mcp"
        assert config.cms_version == "unknown"
        assert config.slow_operation_threshold == 5.0
        assert config.content_snapshot is None
        assert config.security.force_remote_mode is False
        assert config.security.access_capability is None
        assert config.security.require_confirmation is True
        assert config.rate_limit.max_attempts == 60
        assert config.rate_limit.decay_seconds == 60.0

    def test_domains_default_to_local_only(self, clean_env):
        config = ServerConfig.from_env()
        settings = config.domain("entries")
        assert settings.web_enabled is False
        assert settings.audit_logging is True
        assert "entries" in config.tools


class TestTomlLoading:
    """Tests for the TOML config layer."""

    def test_explicit_file(self, clean_env):
        path = clean_env / "custom.toml"
        path.write_text(TOML)
        config = ServerConfig.from_env(str(path))

        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.server_name == "studio"
        assert config.cms_version == "5.2.0"
        assert config.slow_operation_threshold == 2.5
        assert config.content_snapshot == Path("content.json")
        assert config.security.force_remote_mode is True
        assert config.security.access_capability == "access mcp"
        assert config.security.require_confirmation is False
        assert config.tools["entries"].web_enabled is True
        assert config.tools["entries"].capabilities == {"publish": "edit entries"}

    def test_default_file_in_working_directory(self, clean_env):
        (clean_env / "cms-mcp.toml").write_text('[server]\nname = "from-cwd"\n')
        assert ServerConfig.from_env().server_name == "from-cwd"

    def test_missing_file_warns(self, clean_env, caplog):
        caplog.set_level(logging.WARNING, logger="cms_mcp.config")
        config = ServerConfig.from_env(str(clean_env / "absent.toml"))
        assert config.server_name == "cms-mcp"
        assert "Config file not found" in caplog.text

    def test_invalid_toml_logs_error(self, clean_env, caplog):
        path = clean_env / "broken.toml"
        path.write_text("[server\nname = ")
        caplog.set_level(logging.ERROR, logger="cms_mcp.config")
        config = ServerConfig.from_env(str(path))
        assert config.server_name == "cms-mcp"
        assert "Error loading config file" in caplog.text


class TestEnvironmentOverrides:
    def test_env_beats_toml(self, clean_env, monkeypatch):
        path = clean_env / "custom.toml"
        path.write_text(TOML)
        monkeypatch.setenv("CMS_MCP_SERVER_NAME", "from-env")
        monkeypatch.setenv("CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("CMS_MCP_ENTRIES_WEB_ENABLED", "false")
        monkeypatch.setenv("CMS_MCP_USERS_AUDIT_LOGGING", "0")

        config = ServerConfig.from_env(str(path))
        assert config.server_name == "from-env"
        assert config.rate_limit.max_attempts == 3
        assert config.tools["entries"].web_enabled is False
        assert config.domain("users").audit_logging is False

    def test_config_file_from_env(self, clean_env, monkeypatch):
        path = clean_env / "elsewhere.toml"
        path.write_text('[server]\ncms_version = "4.9"\n')
        monkeypatch.setenv("CMS_MCP_CONFIG_FILE", str(path))
        assert ServerConfig.from_env().cms_version == "4.9"

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("yes", True), ("off", False)])
    def test_boolean_parsing(self, clean_env, monkeypatch, value, expected):
        monkeypatch.setenv("CMS_MCP_FORCE_REMOTE_MODE", value)
        assert ServerConfig.from_env().security.force_remote_mode is expected

    def test_invalid_number_is_ignored(self, clean_env, monkeypatch, caplog):
        monkeypatch.setenv("CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS", "lots")
        caplog.set_level(logging.WARNING, logger="cms_mcp.config")
        config = ServerConfig.from_env()
        assert config.rate_limit.max_attempts == 60
        assert "Invalid CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS" in caplog.text


class TestRateLimitResolution:
    def test_domain_override(self):
        config = ServerConfig(rate_limit=RateLimitSettings(max_attempts=10, decay_seconds=30))
        config.tools["entries"] = DomainSettings(max_attempts=2)
        limit = config.rate_limit_for("entries")
        assert (limit.max_attempts, limit.decay_seconds) == (2, 30)
        assert config.rate_limit_for("users").max_attempts == 10

    def test_disabled_globally(self):
        config = ServerConfig(rate_limit=RateLimitSettings(enabled=False))
        assert config.rate_limit_for("entries").enabled is False


class TestGlobalConfig:
    def test_set_and_get(self):
        config = ServerConfig(server_name="custom")
        set_config(config)
        assert get_config() is config

    def test_lazily_created(self, clean_env):
        assert get_config().server_name == "cms-mcp"
