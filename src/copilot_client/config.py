"""Configuration loading for copilot-client.

Example copilot-client.yaml:

    agent:
      command: ["node", "~/.copilot/agent.js", "--stdio"]
      env:
        NODE_OPTIONS: "--max-old-space-size=512"
    base_path: ~/notes
    request_timeout: 15
    logging:
      verbose: 3
      file: ~/.copilot-client.log
    shutdown:
      exit_timeout: 2
      terminate_timeout: 3
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from copilot_client.logging import LOG_ENV_VAR

DEFAULT_CONFIG_NAMES = (
    "copilot-client.yaml",
    ".copilot-client.yaml",
    "copilot-client.yml",
    ".copilot-client.yml",
)


@dataclass
class AgentConfig:
    """How to launch the completion agent."""

    command: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # e.g., "DEBUG", "TRACE"
    verbose: int | None = None  # 0 (errors) .. 4 (trace), takes precedence over level
    file: str | None = None


@dataclass
class ShutdownConfig:
    """Agent shutdown timeouts."""

    exit_timeout: float = 2.0
    """Seconds to wait for the agent to exit after the exit notification."""

    terminate_timeout: float = 3.0
    """Seconds to wait after sending terminate (SIGTERM) before killing."""


@dataclass
class Config:
    """copilot-client configuration."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    base_path: Path = field(default_factory=Path.cwd)
    request_timeout: float = 15.0
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)


def load_config(
    config_path: Path | None = None,
    *,
    agent_command: list[str] | None = None,
    base_path: Path | None = None,
    verbose: int | None = None,
) -> Config:
    """Load configuration from file, then apply CLI overrides."""
    config = Config()

    if config_path is None:
        for name in DEFAULT_CONFIG_NAMES:
            if Path(name).exists():
                config_path = Path(name)
                break

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = _load_yaml_config(config_path)

    if agent_command:
        config.agent.command = list(agent_command)
    if base_path is not None:
        config.base_path = base_path
    if verbose is not None:
        config.logging.verbose = verbose

    if config.logging.file is None:
        config.logging.file = os.environ.get(LOG_ENV_VAR)

    return config


def _load_yaml_config(path: Path) -> Config:
    """Load config from YAML file."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    agent_data = data.get("agent", {}) or {}
    command = agent_data.get("command", [])
    if isinstance(command, str):
        command = command.split()
    agent = AgentConfig(
        command=[os.path.expanduser(part) for part in command],
        env={str(k): str(v) for k, v in (agent_data.get("env") or {}).items()},
    )

    log_data = data.get("logging", {}) or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    shutdown_data = data.get("shutdown", {}) or {}
    shutdown = ShutdownConfig(
        exit_timeout=float(shutdown_data.get("exit_timeout", 2.0)),
        terminate_timeout=float(shutdown_data.get("terminate_timeout", 3.0)),
    )

    base_path = data.get("base_path")
    return Config(
        agent=agent,
        base_path=Path(base_path).expanduser().resolve() if base_path else Path.cwd(),
        request_timeout=float(data.get("request_timeout", 15.0)),
        logging=logging_config,
        shutdown=shutdown,
    )
