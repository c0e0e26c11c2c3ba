"""Shared modules for convergence-harness.

Logging setup used by both the library and the CLI.
"""

from .logging import configure_logging, get_logger, verbosity_to_level

__all__ = [
    "configure_logging",
    "get_logger",
    "verbosity_to_level",
]
