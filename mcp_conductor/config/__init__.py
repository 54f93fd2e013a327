"""Configuration system for mcp-conductor.

Key Components:
    - ConductorSettings: Main configuration container with YAML loading support
    - HostConfig: Host CLI binary and registration scope
    - DependencyConfig: Runtime and package installed during setup
    - SetupServerConfig: Server registered by the setup wizard

Example:
    >>> from mcp_conductor.config import ConductorSettings
    >>> settings = ConductorSettings.from_yaml("conductor.yaml")
    >>> settings.host.binary
    'claude'
"""

from mcp_conductor.config.settings import (
    ConductorSettings,
    DependencyConfig,
    HostConfig,
    SetupServerConfig,
)

__all__ = ["ConductorSettings", "DependencyConfig", "HostConfig", "SetupServerConfig"]
