"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the host application, the
dependency runtime used during setup, the server registered by the setup
wizard, and where setup progress is persisted.

Example YAML::

    host:
      binary: claude
      registration_scope: user
    dependency:
      runtime: npm
      package: servicenow-mcp-server
    server:
      name: servicenow
    state_file: ${HOME}/.mcp-conductor/setup_state.json
    command_timeout: 60
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_conductor.enums import Scope
from mcp_conductor.exceptions import ConfigurationError

DEFAULT_STATE_FILE = Path.home() / ".mcp-conductor" / "setup_state.json"


class HostConfig(BaseModel):
    """AI coding assistant host whose MCP servers are managed."""

    binary: str = Field(default="claude", description="Host CLI executable")
    registration_scope: Scope = Field(
        default=Scope.USER, description="Scope used when the setup wizard registers its server"
    )


class DependencyConfig(BaseModel):
    """Runtime and package installed during setup."""

    runtime: str = Field(default="npm", description="Package manager used to install the server")
    package: str = Field(default="servicenow-mcp-server", description="Server package name")
    launcher: str = Field(default="npx", description="Command that launches the installed package")


class SetupServerConfig(BaseModel):
    """Server registered by the setup wizard and the env vars carrying its credentials."""

    name: str = Field(default="servicenow", description="Name the server is registered under")
    url_env: str = Field(default="SERVICENOW_INSTANCE_URL", description="Env var for the endpoint URL")
    username_env: str = Field(default="SERVICENOW_USERNAME", description="Env var for the username")
    password_env: str = Field(default="SERVICENOW_PASSWORD", description="Env var for the password")


class ConductorSettings(BaseSettings):
    """Main mcp-conductor settings.

    Every section has defaults, so a settings file is optional. Environment
    variables prefixed with ``MCP_CONDUCTOR_`` override individual values,
    e.g. ``MCP_CONDUCTOR_HOST__BINARY=/opt/claude/bin/claude``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_CONDUCTOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    host: HostConfig = Field(default_factory=HostConfig)
    dependency: DependencyConfig = Field(default_factory=DependencyConfig)
    server: SetupServerConfig = Field(default_factory=SetupServerConfig)
    state_file: Path = Field(default=DEFAULT_STATE_FILE, description="Persisted setup progress")
    command_timeout: float = Field(default=60.0, gt=0, description="Seconds before a gateway command is killed")
    log_level: str = Field(default="WARNING", description="Minimum log level when --log-level is not given")

    @classmethod
    def from_yaml(cls, config_path: str) -> ConductorSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            ConductorSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            stripped = line.lstrip()
            if stripped.startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
