"""Harness configuration.

One HarnessConfig is built at startup and passed to whatever needs it; no
module reads flags or environment on its own. Values come from
~/.convergence-harness/config.yaml, then HARNESS_* environment variables,
then explicit overrides (CLI flags).
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .poller import PollSpec

# Default values
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_DELETION_TIMEOUT = 60.0

# Environment variable mappings
ENV_VARS = {
    "kubeconfig": "HARNESS_KUBECONFIG",
    "context": "HARNESS_CONTEXT",
    "poll_interval": "HARNESS_POLL_INTERVAL",
    "deletion_timeout": "HARNESS_DELETION_TIMEOUT",
    "request_timeout": "HARNESS_REQUEST_TIMEOUT",
}

DURATION_KEYS = ("poll_interval", "deletion_timeout", "request_timeout")


@dataclass
class HarnessConfig:
    """Harness configuration. Durations are in seconds."""

    kubeconfig: str | None = None
    context: str | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    deletion_timeout: float = DEFAULT_DELETION_TIMEOUT
    # Per kubectl call; unset means one poll interval
    request_timeout: float | None = None

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def to_dict(self) -> dict[str, Any]:
        """Public values keyed by name."""
        return {name: getattr(self, name) for name in config_keys()}

    def deletion_poll_spec(self) -> PollSpec:
        """Poll settings for scale-down and deletion waits."""
        return PollSpec(interval=self.poll_interval, timeout=self.deletion_timeout)

    def kubectl_timeout(self) -> float:
        """Upper bound for a single kubectl call."""
        return self.request_timeout or self.poll_interval

    def poll_spec(self, timeout: float) -> PollSpec:
        """Poll settings with the configured interval and a custom timeout."""
        return PollSpec(interval=self.poll_interval, timeout=timeout)

    def validate(self) -> None:
        """Check values before building clients.

        Raises:
            ConfigError: A duration is not positive or kubeconfig is missing.
        """
        for key in DURATION_KEYS:
            value = getattr(self, key)
            if value is not None and value <= 0:
                raise ConfigError(f"{key} must be positive, got {value}")
        if self.kubeconfig and not Path(self.kubeconfig).expanduser().exists():
            raise ConfigError(f"kubeconfig not found: {self.kubeconfig}")


def config_keys() -> list[str]:
    """Names of all settable config keys."""
    return [f.name for f in fields(HarnessConfig) if not f.name.startswith("_")]


def get_config_path() -> Path:
    """Get the config file path.

    Returns:
        Path to ~/.convergence-harness/config.yaml
    """
    return Path.home() / ".convergence-harness" / "config.yaml"


def _coerce(key: str, value: Any) -> Any:
    if key in DURATION_KEYS:
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number of seconds, got {value!r}")
    return None if value is None else str(value)


def load_config(overrides: dict[str, Any] | None = None) -> HarnessConfig:
    """Load harness configuration.

    Precedence (highest to lowest):
    1. Overrides (CLI flags); None values are ignored
    2. Environment variables
    3. Config file (~/.convergence-harness/config.yaml)
    4. Defaults

    Raises:
        ConfigError: The config file is unreadable or a value has the wrong type.
    """
    config = HarnessConfig()
    sources: dict[str, str] = {key: "default" for key in config_keys()}
    known = set(config_keys())

    config_path = get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {config_path}: {e}")
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping")

        for key, value in file_config.items():
            if key in known:
                setattr(config, key, _coerce(key, value))
                sources[key] = "config file"

    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            setattr(config, key, _coerce(key, os.environ[env_var]))
            sources[key] = "environment"

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in known:
            raise ConfigError(f"Unknown config key: {key}")
        setattr(config, key, _coerce(key, value))
        sources[key] = "flag"

    config._sources = sources
    return config


def save_config(key: str, value: Any) -> None:
    """Save a config value to the config file.

    Raises:
        ConfigError: Unknown key or invalid value.
    """
    if key not in config_keys():
        raise ConfigError(f"Unknown config key: {key}")
    value = _coerce(key, value)

    config_path = get_config_path()
    existing: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}

    existing[key] = value

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(existing, f, default_flow_style=False)


def unset_config(key: str) -> bool:
    """Remove a config value from the config file.

    Returns:
        True if key was removed, False if not found
    """
    config_path = get_config_path()
    if not config_path.exists():
        return False

    with open(config_path) as f:
        existing = yaml.safe_load(f) or {}

    if key not in existing:
        return False

    del existing[key]

    with open(config_path, "w") as f:
        yaml.safe_dump(existing, f, default_flow_style=False)

    return True
