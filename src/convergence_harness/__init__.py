"""Convergence Harness - wait for cluster resources to reach a goal state."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("convergence-harness")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .config import HarnessConfig, load_config
from .errors import (
    ConfigError,
    ConvergenceError,
    ErrorClass,
    ErrorClassifier,
    ErrorKind,
    HarnessError,
    ResourceAPIError,
)
from .framework import Framework
from .operations import ResourceAPI, ResourceRef, scale_to_zero, wait_until, wait_until_deleted
from .poller import (
    CancellationToken,
    PollOutcome,
    PollResult,
    PollSpec,
    PollStatus,
    SystemClock,
    poll,
)

__all__ = [
    "__version__",
    # Poller
    "PollSpec",
    "PollOutcome",
    "PollResult",
    "PollStatus",
    "CancellationToken",
    "SystemClock",
    "poll",
    # Operations
    "ResourceRef",
    "ResourceAPI",
    "scale_to_zero",
    "wait_until_deleted",
    "wait_until",
    "Framework",
    # Errors
    "ErrorKind",
    "ErrorClass",
    "ErrorClassifier",
    "HarnessError",
    "ConfigError",
    "ResourceAPIError",
    "ConvergenceError",
    # Config
    "HarnessConfig",
    "load_config",
]
