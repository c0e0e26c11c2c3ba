"""CLI main entry point."""

import json

import click
from rich.markup import escape

from . import __version__
from .commands import scale_to_zero_cmd, wait_deleted_cmd
from .commands.context import console, load_context_config
from .config import config_keys, save_config, unset_config
from .errors import ConfigError
from .shared.logging import LEVELS, configure_logging, verbosity_to_level


@click.group()
@click.option("--kubeconfig", type=click.Path(), default=None, help="Kubeconfig file")
@click.option("--context", "kube_context", default=None, help="Kubeconfig context")
@click.option("--interval", type=float, default=None, help="Poll interval in seconds")
@click.option("--timeout", type=float, default=None, help="Timeout per wait in seconds")
@click.option(
    "--request-timeout",
    type=float,
    default=None,
    help="Timeout per kubectl call in seconds (default: the poll interval)",
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-level", type=click.Choice(LEVELS), default=None, help="Explicit log level")
@click.option("--log-file", type=click.Path(), default=None, help="Write logs to a file")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    kube_context: str | None,
    interval: float | None,
    timeout: float | None,
    request_timeout: float | None,
    verbose: int,
    log_level: str | None,
    log_file: str | None,
    json_output: bool,
) -> None:
    """Drive cluster resources to a goal state and wait for it to stick."""
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json_output
    ctx.obj["overrides"] = {
        "kubeconfig": kubeconfig,
        "context": kube_context,
        "poll_interval": interval,
        "deletion_timeout": timeout,
        "request_timeout": request_timeout,
    }
    configure_logging(
        log_level or verbosity_to_level(verbose),
        log_file=log_file,
        json_output=json_output,
    )


cli.add_command(scale_to_zero_cmd)
cli.add_command(wait_deleted_cmd)


@cli.command()
def version() -> None:
    """Show version."""
    click.echo(f"convergence-harness {__version__}")


@cli.group()
def config() -> None:
    """Inspect and change harness configuration."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show effective configuration and where each value came from."""
    cfg = load_context_config(ctx)
    values = cfg.to_dict()

    if ctx.obj.get("json_output"):
        sources = {key: cfg.get_source(key) for key in values}
        click.echo(json.dumps({"values": values, "sources": sources}, indent=2))
        return

    console.print("[bold]Convergence Harness Configuration[/bold]")
    for key, value in values.items():
        shown = "-" if value is None else value
        console.print(f"  {key}: {escape(str(shown))} [dim]({cfg.get_source(key)})[/dim]")


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Persist KEY=VALUE in the config file."""
    try:
        save_config(key, value)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        console.print(f"Valid keys: {', '.join(config_keys())}")
        raise SystemExit(2)
    console.print(f"Set {escape(key)} = {escape(value)}")


@config.command("unset")
@click.argument("key")
def config_unset(key: str) -> None:
    """Remove KEY from the config file."""
    if unset_config(key):
        console.print(f"Unset {escape(key)}")
    else:
        console.print(f"{escape(key)} is not set in the config file")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
