"""Lifecycle commands: scale-to-zero and wait-deleted.

Both build a Framework from the loaded config, run one operation and exit
with 0 when it converged, 1 when it timed out or was interrupted, and 2 on a
fatal error.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import click
from rich.markup import escape

from ..errors import ConfigError
from ..framework import Framework
from ..operations import DEPLOYMENT_REPLICA_FIELD, STATEFULSET_REPLICA_FIELD, ResourceRef
from ..poller import CancellationToken, PollOutcome, PollResult, PollStatus
from .context import console, load_context_config

DEFAULT_OBSERVE_FIELDS = {
    "statefulset": STATEFULSET_REPLICA_FIELD,
    "statefulsets": STATEFULSET_REPLICA_FIELD,
    "sts": STATEFULSET_REPLICA_FIELD,
    "deployment": DEPLOYMENT_REPLICA_FIELD,
    "deployments": DEPLOYMENT_REPLICA_FIELD,
    "deploy": DEPLOYMENT_REPLICA_FIELD,
}

EXIT_CODES = {
    PollStatus.SUCCESS: 0,
    PollStatus.TIMED_OUT: 1,
    PollStatus.CANCELLED: 1,
    PollStatus.FATAL: 2,
}


def run_cancellable(operation: Callable[[CancellationToken], PollResult]) -> PollResult:
    """Run operation in a worker thread; Ctrl-C cancels it instead of killing it."""
    token = CancellationToken()
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(operation, token)
        while True:
            try:
                return future.result()
            except KeyboardInterrupt:
                console.print("[yellow]Interrupted, cancelling...[/yellow]")
                token.cancel()


def _print_tick(tick: int, outcome: PollOutcome) -> None:
    if outcome.detail:
        detail = escape(outcome.detail)
        console.print(f"[dim]  tick {tick}: {outcome.state.value} ({detail})[/dim]")


def _build_framework(ctx: click.Context) -> Framework:
    config = load_context_config(ctx)
    on_tick = None if ctx.obj.get("json_output") else _print_tick
    try:
        return Framework.from_config(config, on_tick=on_tick)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(2)


def _report(ctx: click.Context, result: PollResult) -> None:
    if ctx.obj.get("json_output"):
        click.echo(
            json.dumps(
                {
                    "status": result.status.value,
                    "description": result.description,
                    "ticks": result.ticks,
                    "elapsed_seconds": round(result.elapsed_seconds, 3),
                    "error": result.error,
                }
            )
        )
    elif result.ok:
        console.print(
            f"[green]✓[/green] {escape(result.description)}: converged after "
            f"{result.ticks} tick(s) in {result.elapsed_seconds:.1f}s"
        )
    else:
        label = result.status.value.replace("_", " ")
        description = escape(result.description)
        message = f"[red]✗[/red] {description}: {label} after {result.ticks} tick(s)"
        if result.error:
            message += f" (last error: {escape(result.error)})"
        console.print(message)

    raise SystemExit(EXIT_CODES[result.status])


@click.command("scale-to-zero")
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", default="default", help="Namespace of the workload")
@click.option(
    "--observe-field",
    default=None,
    help="Status field that must reach 0 (default depends on KIND)",
)
@click.pass_context
def scale_to_zero_cmd(ctx, kind, name, namespace, observe_field):
    """Scale a workload to zero replicas and wait until none are left.

    Examples:

        convergence-harness scale-to-zero statefulset etcd -n kube-system

        convergence-harness scale-to-zero replicaset web --observe-field replicas
    """
    observe_field = observe_field or DEFAULT_OBSERVE_FIELDS.get(kind.lower())
    if observe_field is None:
        console.print(f"[red]Error:[/red] --observe-field is required for kind '{escape(kind)}'")
        raise SystemExit(2)

    framework = _build_framework(ctx)
    ref = ResourceRef(kind, name, namespace)
    result = run_cancellable(lambda token: framework.scale_to_zero(ref, observe_field, token))
    _report(ctx, result)


@click.command("wait-deleted")
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", default="default", help="Namespace of the object")
@click.pass_context
def wait_deleted_cmd(ctx, kind, name, namespace):
    """Delete an object and wait until it is gone.

    An object that does not exist counts as deleted.
    """
    framework = _build_framework(ctx)
    ref = ResourceRef(kind, name, namespace)
    result = run_cancellable(lambda token: framework.wait_until_deleted(ref, token))
    _report(ctx, result)
