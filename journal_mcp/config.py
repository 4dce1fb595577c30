"""
Configuration module.
This module loads the server configuration from a YAML file.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from journal_mcp.core.capabilities_manager import CAPABILITY_GROUPS
from journal_mcp.error_handling.exceptions import ConfigurationError

TRANSPORTS = ("stdio", "sse")

DB_ENV_VAR = "JOURNAL_MCP_DB"


@dataclass
class SamplingConfig:
    """Server-to-client sampling settings."""
    enabled: bool = True
    max_tokens: int = 100
    timeout: Optional[float] = None


@dataclass
class ServerConfig:
    """Configuration for the journal server."""
    server_name: str = "journal-mcp"
    server_version: str = "1.0.0"
    instructions: Optional[str] = None
    database_path: str = "journal.db"
    uri_scheme: str = "journal"
    transport: str = "stdio"
    host: str = "localhost"
    port: int = 8080
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    heartbeat_interval: float = 30
    log_level: str = "INFO"
    logging: Optional[Dict[str, Any]] = None
    capabilities: Dict[str, bool] = field(default_factory=dict)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    def __post_init__(self):
        if self.transport not in TRANSPORTS:
            raise ConfigurationError(
                f"Unknown transport: {self.transport} (expected one of {', '.join(TRANSPORTS)})"
            )
        unknown = [group for group in self.capabilities if group not in CAPABILITY_GROUPS]
        if unknown:
            raise ConfigurationError(f"Unknown capability groups in configuration: {', '.join(unknown)}")
        if isinstance(self.sampling, dict):
            self.sampling = _build(SamplingConfig, self.sampling, "sampling")


def _build(cls, data: Dict[str, Any], section: str):
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {section} configuration: {e}", original_exception=e)


def config_from_dict(data: Optional[Dict[str, Any]]) -> ServerConfig:
    """
    Build a ServerConfig from a mapping, applying environment overrides.

    Args:
        data: Parsed configuration, None for all defaults

    Returns:
        ServerConfig: The configuration

    Raises:
        ConfigurationError: If a key is unknown or a value is invalid
    """
    data = dict(data or {})
    if os.getenv(DB_ENV_VAR):
        data["database_path"] = os.getenv(DB_ENV_VAR)
    return _build(ServerConfig, data, "server")


def load_config(config_path: str) -> ServerConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        ServerConfig object with loaded configuration

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML or holds invalid settings
    """
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}", original_exception=e)

    if config_data is not None and not isinstance(config_data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    return config_from_dict(config_data)
