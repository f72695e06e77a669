"""
Server configuration for cms-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (cms-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- CMS_MCP_CONFIG_FILE: Path to TOML config file
- CMS_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- CMS_MCP_STRUCTURED_LOGGING: JSON log lines on stderr (true/false)
- CMS_MCP_SERVER_NAME: Server name reported to MCP clients
- CMS_MCP_CMS_VERSION: Host CMS version reported in response metadata
- CMS_MCP_CONTENT_SNAPSHOT: JSON file seeding the in-memory content store
- CMS_MCP_FORCE_REMOTE_MODE: Treat stdio callers as remote (true/false)
- CMS_MCP_ACCESS_CAPABILITY: Capability every remote principal must hold
- CMS_MCP_REQUIRE_CONFIRMATION: Require confirm=true for destructive actions
- CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS: Remote calls allowed per window
- CMS_MCP_RATE_LIMIT_DECAY_SECONDS: Rate limit window length
- CMS_MCP_<DOMAIN>_WEB_ENABLED: Expose a tool domain to remote callers
- CMS_MCP_<DOMAIN>_AUDIT_LOGGING: Audit-log calls for a tool domain

Example cms-mcp.toml:

    [security]
    force_remote_mode = true
    access_capability = "access mcp"

    [rate_limit]
    max_attempts = 30

    [tools.entries]
    web_enabled = true

    [tools.entries.capabilities]
    publish = "edit entries"
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version as get_package_version
from pathlib import Path
from typing import Any, Dict, Optional

from cms_mcp.core.logging_config import configure_logging
from cms_mcp.core.rate_limit import RateLimitConfig

logger = logging.getLogger(__name__)

TOOL_DOMAINS = (
    "collections",
    "entries",
    "blueprints",
    "globals",
    "forms",
    "roles",
    "sites",
    "users",
    "groups",
    "templates",
    "system",
)


def _get_version() -> str:
    try:
        return get_package_version("cms-mcp")
    except PackageNotFoundError:
        return "0.1.0"


_PACKAGE_VERSION = _get_version()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class SecurityConfig:
    """Remote-access settings.

    Attributes:
        force_remote_mode: Run stdio callers through the remote auth path
        access_capability: Extra capability demanded of every remote principal
        require_confirmation: Destructive actions need confirm=true or dry_run=true
    """

    force_remote_mode: bool = False
    access_capability: Optional[str] = None
    require_confirmation: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "SecurityConfig":
        return cls(
            force_remote_mode=_parse_bool(data.get("force_remote_mode", False)),
            access_capability=data.get("access_capability") or None,
            require_confirmation=_parse_bool(data.get("require_confirmation", True)),
        )


@dataclass
class RateLimitSettings:
    """Default fixed-window budget for remote callers."""

    max_attempts: int = 60
    decay_seconds: float = 60.0
    enabled: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RateLimitSettings":
        return cls(
            max_attempts=int(data.get("max_attempts", 60)),
            decay_seconds=float(data.get("decay_seconds", 60)),
            enabled=_parse_bool(data.get("enabled", True)),
        )


@dataclass
class DomainSettings:
    """Per-domain tool settings (``[tools.<domain>]``).

    ``max_attempts`` and ``decay_seconds`` override the global rate limit
    when set. ``capabilities`` maps action names to capability overrides.
    """

    web_enabled: bool = False
    audit_logging: bool = True
    max_attempts: Optional[int] = None
    decay_seconds: Optional[float] = None
    capabilities: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "DomainSettings":
        max_attempts = data.get("max_attempts")
        decay_seconds = data.get("decay_seconds")
        return cls(
            web_enabled=_parse_bool(data.get("web_enabled", False)),
            audit_logging=_parse_bool(data.get("audit_logging", True)),
            max_attempts=int(max_attempts) if max_attempts is not None else None,
            decay_seconds=float(decay_seconds) if decay_seconds is not None else None,
            capabilities={str(k): str(v) for k, v in dict(data.get("capabilities", {})).items()},
        )

    def rate_limit(self, defaults: RateLimitSettings) -> RateLimitConfig:
        return RateLimitConfig(
            max_attempts=self.max_attempts if self.max_attempts is not None else defaults.max_attempts,
            decay_seconds=self.decay_seconds if self.decay_seconds is not None else defaults.decay_seconds,
            enabled=defaults.enabled,
        )


@dataclass
class ServerConfig:
    """Server configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Server configuration
    server_name: str = "cms-mcp"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)
    cms_version: str = "unknown"
    slow_operation_threshold: float = 5.0

    # Content seeding
    content_snapshot: Optional[Path] = None

    security: SecurityConfig = field(default_factory=SecurityConfig)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    tools: Dict[str, DomainSettings] = field(default_factory=dict)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get("CMS_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in ["cms-mcp.toml", ".cms-mcp.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def domain(self, name: str) -> DomainSettings:
        """Settings for a tool domain; unknown domains get the defaults."""
        if name not in self.tools:
            self.tools[name] = DomainSettings()
        return self.tools[name]

    def rate_limit_for(self, name: str) -> RateLimitConfig:
        return self.domain(name).rate_limit(self.rate_limit)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
            return

        self.apply_toml_dict(data)

    def apply_toml_dict(self, data: Dict[str, Any]) -> None:
        """Apply parsed TOML settings on top of the current values."""
        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

        if "server" in data:
            srv = data["server"]
            if "name" in srv:
                self.server_name = srv["name"]
            if "cms_version" in srv:
                self.cms_version = str(srv["cms_version"])
            if "slow_operation_threshold" in srv:
                self.slow_operation_threshold = float(srv["slow_operation_threshold"])

        if "content" in data and "snapshot" in data["content"]:
            self.content_snapshot = Path(data["content"]["snapshot"])

        if "security" in data:
            self.security = SecurityConfig.from_toml_dict(data["security"])

        if "rate_limit" in data:
            self.rate_limit = RateLimitSettings.from_toml_dict(data["rate_limit"])

        for name, section in dict(data.get("tools", {})).items():
            if isinstance(section, dict):
                self.tools[name] = DomainSettings.from_toml_dict(section)

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("CMS_MCP_LOG_LEVEL"):
            self.log_level = level.upper()

        if structured := os.environ.get("CMS_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        if name := os.environ.get("CMS_MCP_SERVER_NAME"):
            self.server_name = name

        if cms_version := os.environ.get("CMS_MCP_CMS_VERSION"):
            self.cms_version = cms_version

        if snapshot := os.environ.get("CMS_MCP_CONTENT_SNAPSHOT"):
            self.content_snapshot = Path(snapshot)

        if force_remote := os.environ.get("CMS_MCP_FORCE_REMOTE_MODE"):
            self.security.force_remote_mode = _parse_bool(force_remote)

        if access := os.environ.get("CMS_MCP_ACCESS_CAPABILITY"):
            self.security.access_capability = access

        if confirm := os.environ.get("CMS_MCP_REQUIRE_CONFIRMATION"):
            self.security.require_confirmation = _parse_bool(confirm)

        if max_attempts := os.environ.get("CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS"):
            try:
                self.rate_limit.max_attempts = int(max_attempts)
            except ValueError:
                logger.warning(f"Invalid CMS_MCP_RATE_LIMIT_MAX_ATTEMPTS: {max_attempts}")

        if decay := os.environ.get("CMS_MCP_RATE_LIMIT_DECAY_SECONDS"):
            try:
                self.rate_limit.decay_seconds = float(decay)
            except ValueError:
                logger.warning(f"Invalid CMS_MCP_RATE_LIMIT_DECAY_SECONDS: {decay}")

        for domain in TOOL_DOMAINS:
            prefix = f"CMS_MCP_{domain.upper()}"
            if web_enabled := os.environ.get(f"{prefix}_WEB_ENABLED"):
                self.domain(domain).web_enabled = _parse_bool(web_enabled)
            if audit := os.environ.get(f"{prefix}_AUDIT_LOGGING"):
                self.domain(domain).audit_logging = _parse_bool(audit)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(
            level=self.log_level,
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
