"""Test framework facade.

Framework bundles a config, a resource API and the hooks a test suite may
want to override, and exposes the lifecycle operations with the configured
poll settings.
"""

from __future__ import annotations

from typing import Callable

from structlog.contextvars import bound_contextvars

from .config import HarnessConfig
from .errors import is_not_found
from .kubectl import KubectlResourceAPI
from .operations import (
    DEPLOYMENT_REPLICA_FIELD,
    STATEFULSET_REPLICA_FIELD,
    ResourceAPI,
    ResourceRef,
    scale_to_zero,
    wait_until,
    wait_until_deleted,
)
from .poller import CancellationToken, Clock, PollResult, TickCallback
from .shared.logging import get_logger

logger = get_logger(__name__)

ErrorHook = Callable[[BaseException | None], None]
StepHook = Callable[[str], None]


def default_expect_no_error(err: BaseException | None) -> None:
    """Fail the current test when err is set."""
    if err is not None:
        raise AssertionError(f"Unexpected error: {err}") from err


def default_by(message: str) -> None:
    """Record a test step."""
    logger.info("step", message=message)


class Framework:
    """Common operations used by cluster e2e tests."""

    def __init__(
        self,
        config: HarnessConfig,
        api: ResourceAPI,
        *,
        clock: Clock | None = None,
        expect_no_error: ErrorHook | None = None,
        by: StepHook | None = None,
        on_tick: TickCallback | None = None,
    ):
        """Initialize framework.

        Args:
            config: Harness configuration.
            api: Remote resource API shared by all operations.
            clock: Time source override for the pollers.
            expect_no_error: Called with errors a test does not expect.
            by: Called with a description of each test step.
            on_tick: Progress callback forwarded to every poll run.
        """
        self.config = config
        self.api = api
        self.clock = clock
        self.expect_no_error = expect_no_error or default_expect_no_error
        self.by = by or default_by
        self.on_tick = on_tick

    @classmethod
    def from_config(cls, config: HarnessConfig, **kwargs) -> Framework:
        """Validate config and build a framework talking to the cluster via kubectl.

        Each kubectl call is capped at config.kubectl_timeout() so a hung call
        cannot hold a tick past the deadline.
        """
        config.validate()
        api = KubectlResourceAPI(
            kubeconfig=config.kubeconfig,
            context=config.context,
            request_timeout=config.kubectl_timeout(),
        )
        return cls(config, api, **kwargs)

    def ignore_not_found(self, err: BaseException | None) -> None:
        """Accept not-found errors, e.g. when deleting something already gone."""
        if err is None or is_not_found(err):
            return
        self.expect_no_error(err)

    def assert_converged(self, result: PollResult) -> None:
        """Report a non-successful result through expect_no_error."""
        try:
            result.raise_for_status()
        except Exception as e:
            self.expect_no_error(e)

    def scale_to_zero(
        self,
        ref: ResourceRef,
        observed_field: str,
        cancel: CancellationToken | None = None,
    ) -> PollResult:
        """Scale ref to zero and wait for observed_field to reach 0."""
        self.by(f"Scaling {ref} down to zero")
        with bound_contextvars(resource=str(ref)):
            return scale_to_zero(
                self.api,
                ref,
                observed_field,
                poll_spec=self.config.deletion_poll_spec(),
                clock=self.clock,
                cancel=cancel,
                on_tick=self.on_tick,
            )

    def scale_statefulset_to_zero(
        self, name: str, namespace: str = "default", cancel: CancellationToken | None = None
    ) -> PollResult:
        ref = ResourceRef("statefulset", name, namespace)
        return self.scale_to_zero(ref, STATEFULSET_REPLICA_FIELD, cancel)

    def scale_deployment_to_zero(
        self, name: str, namespace: str = "default", cancel: CancellationToken | None = None
    ) -> PollResult:
        ref = ResourceRef("deployment", name, namespace)
        return self.scale_to_zero(ref, DEPLOYMENT_REPLICA_FIELD, cancel)

    def wait_until_deleted(
        self, ref: ResourceRef, cancel: CancellationToken | None = None
    ) -> PollResult:
        """Delete ref and wait until the cluster no longer has it."""
        self.by(f"Deleting {ref}")
        with bound_contextvars(resource=str(ref)):
            return wait_until_deleted(
                lambda: self.api.delete(ref),
                lambda: self.api.get(ref),
                poll_spec=self.config.deletion_poll_spec(),
                clock=self.clock,
                cancel=cancel,
                on_tick=self.on_tick,
                description=f"{ref} deletion",
            )

    def wait_until(
        self,
        predicate: Callable[[], bool],
        description: str,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> PollResult:
        """Poll predicate at the configured interval.

        timeout defaults to the deletion timeout.
        """
        self.by(f"Waiting for {description}")
        return wait_until(
            predicate,
            poll_spec=self.config.poll_spec(timeout or self.config.deletion_timeout),
            clock=self.clock,
            cancel=cancel,
            on_tick=self.on_tick,
            description=description,
        )
