"""Shared helpers for commands that need the harness config."""

import click
from rich.console import Console
from rich.markup import escape

from ..config import HarnessConfig, load_config
from ..errors import ConfigError

console = Console(soft_wrap=True)


def load_context_config(ctx: click.Context) -> HarnessConfig:
    """Load config with the global CLI flags as overrides.

    Exits with status 2 when the config cannot be loaded.
    """
    try:
        return load_config(ctx.obj.get("overrides"))
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(2)
