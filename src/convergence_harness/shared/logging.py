"""Logging configuration for convergence-harness.

structlog on top of standard logging. Pollers emit one event per tick, so
verbose runs read as a timeline of what the cluster reported. Framework
operations bind the resource they act on through structlog.contextvars, and
every event carries it.
"""

import logging
import sys
from pathlib import Path

import structlog

LEVELS = ("debug", "info", "warning", "error", "critical")


def verbosity_to_level(verbose: int) -> str:
    """Map a -v count to a log level name."""
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warning"


def drop_empty_fields(logger, method_name, event_dict):
    """Remove None-valued keys (e.g. a converged tick with no detail)."""
    return {key: value for key, value in event_dict.items() if value is not None}


def build_processors(json_output: bool = False) -> list:
    """Processor chain shared by console and JSON output."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        drop_empty_fields,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure standard logging and structlog.

    Called once by the CLI. Library users embedding the harness in a test
    suite may call it from a conftest, or leave logging to their runner.

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Optional path to write logs to instead of stderr
        json_output: Render events as JSON lines (for CI log collection)
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    handler = logging.FileHandler(str(log_file)) if log_file else logging.StreamHandler(sys.stderr)
    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    structlog.configure(
        processors=build_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger (name is typically __name__)."""
    return structlog.get_logger(name)
