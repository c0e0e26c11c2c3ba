"""Lifecycle operations built on the convergence poller.

Each operation supplies a step for the poller: it issues one call against the
remote API and turns the response, or the error, into a PollOutcome using an
ErrorClassifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .errors import DEFAULT_CLASSIFIER, ErrorClass, ErrorClassifier, ErrorKind, error_kind
from .poller import (
    CancellationToken,
    Clock,
    PollOutcome,
    PollResult,
    PollSpec,
    TickCallback,
    poll,
)
from .shared.logging import get_logger

logger = get_logger(__name__)

# Status fields the scale-down observers read
STATEFULSET_REPLICA_FIELD = "currentReplicas"
DEPLOYMENT_REPLICA_FIELD = "availableReplicas"


@dataclass(frozen=True)
class ResourceRef:
    """Identifies one object in the cluster."""

    kind: str
    name: str
    namespace: str = "default"

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


class ResourceAPI(Protocol):
    """Remote API the operations drive.

    Implementations raise ResourceAPIError on failure, with the error kind
    already resolved. Instances are shared across concurrent operations and
    must tolerate that.
    """

    def update(self, ref: ResourceRef, patch: dict[str, Any]) -> None: ...

    def get(self, ref: ResourceRef) -> dict[str, Any]: ...

    def delete(self, ref: ResourceRef) -> None: ...


def scale_to_zero(
    api: ResourceAPI,
    ref: ResourceRef,
    observed_field: str,
    *,
    poll_spec: PollSpec,
    classifier: ErrorClassifier = DEFAULT_CLASSIFIER,
    clock: Clock | None = None,
    cancel: CancellationToken | None = None,
    on_tick: TickCallback | None = None,
) -> PollResult:
    """Scale a workload to zero replicas and wait until it is really empty.

    Two poll runs, each with the full timeout. The first submits replicas=0
    until the update is accepted; the second reads status until
    ``observed_field`` is 0. A missing resource ends either phase
    successfully. The second phase only starts once the first succeeded.

    Args:
        api: Remote resource API.
        ref: Workload to scale.
        observed_field: Status field that must reach 0 (for example
            ``currentReplicas`` for StatefulSets).
        poll_spec: Interval and per-phase timeout.
        classifier: Error policy; the default never fails fast.
        clock: Time source override.
        cancel: Optional cancellation token.
        on_tick: Optional progress callback.

    Returns:
        Result of the mutate phase if it did not succeed, otherwise the
        result of the observe phase.
    """
    log = logger.bind(resource=str(ref))

    def mutate() -> PollOutcome:
        try:
            api.update(ref, {"spec": {"replicas": 0}})
        except Exception as e:
            log.info("scale_update_error", error=str(e))
            if error_kind(e) is ErrorKind.NOT_FOUND:
                return PollOutcome.converged("resource not found")
            if classifier.classify(e) is ErrorClass.FATAL:
                return PollOutcome.failed(str(e))
            return PollOutcome.pending(str(e))
        return PollOutcome.converged("replicas set to 0")

    result = poll(
        poll_spec,
        mutate,
        clock=clock,
        cancel=cancel,
        on_tick=on_tick,
        description=f"{ref} scale request",
    )
    if not result.ok:
        return result

    def observe() -> PollOutcome:
        try:
            status = api.get(ref)
        except Exception as e:
            if error_kind(e) is ErrorKind.NOT_FOUND:
                return PollOutcome.converged("resource not found")
            if classifier.classify(e) is ErrorClass.FATAL:
                return PollOutcome.failed(str(e))
            return PollOutcome.pending(str(e))

        # Kubernetes omits zero-valued counters from status
        count = status.get(observed_field) or 0
        if count == 0:
            return PollOutcome.converged(f"{observed_field}=0")
        return PollOutcome.pending(f"{observed_field}={count}")

    return poll(
        poll_spec,
        observe,
        clock=clock,
        cancel=cancel,
        on_tick=on_tick,
        description=f"{ref} {observed_field} to reach 0",
    )


def wait_until_deleted(
    delete: Callable[[], Any],
    get: Callable[[], Any],
    *,
    poll_spec: PollSpec,
    classifier: ErrorClassifier = DEFAULT_CLASSIFIER,
    clock: Clock | None = None,
    cancel: CancellationToken | None = None,
    on_tick: TickCallback | None = None,
    description: str = "resource deletion",
) -> PollResult:
    """Keep deleting a resource until it is gone.

    Every tick calls ``delete``. "Being deleted" means wait for the next tick;
    "not found" means done; other errors are retried. When ``delete`` is
    accepted, ``get`` is called straight away and only a not-found answer
    counts as converged.

    Any errors other than not-found are retried until the timeout, including
    a deletion that stays in progress forever. The default classifier never
    turns an API error into a fatal result; a custom one is consulted for
    errors from both calls.
    """
    log = logger.bind(waiting_for=description)

    def step() -> PollOutcome:
        try:
            delete()
        except Exception as e:
            log.info("delete_error", error=str(e))
            kind = error_kind(e)
            if kind is ErrorKind.IN_PROGRESS:
                return PollOutcome.pending("deletion in progress")
            if kind is ErrorKind.NOT_FOUND:
                return PollOutcome.converged("resource not found")
            if classifier.classify(e) is ErrorClass.FATAL:
                return PollOutcome.failed(str(e))
            return PollOutcome.pending(str(e))

        try:
            get()
        except Exception as e:
            log.info("get_error", error=str(e))
            if error_kind(e) is ErrorKind.NOT_FOUND:
                return PollOutcome.converged("resource not found")
            if classifier.classify(e) is ErrorClass.FATAL:
                return PollOutcome.failed(str(e))
            return PollOutcome.pending(str(e))
        return PollOutcome.pending("delete accepted, resource still present")

    return poll(
        poll_spec,
        step,
        clock=clock,
        cancel=cancel,
        on_tick=on_tick,
        description=description,
    )


def wait_until(
    predicate: Callable[[], bool],
    *,
    poll_spec: PollSpec,
    classifier: ErrorClassifier = DEFAULT_CLASSIFIER,
    clock: Clock | None = None,
    cancel: CancellationToken | None = None,
    on_tick: TickCallback | None = None,
    description: str = "condition",
) -> PollResult:
    """Poll until predicate returns a truthy value.

    Exceptions from the predicate are retried unless the classifier marks
    them fatal.
    """

    def step() -> PollOutcome:
        try:
            if predicate():
                return PollOutcome.converged()
        except Exception as e:
            if classifier.classify(e) is ErrorClass.FATAL:
                return PollOutcome.failed(str(e))
            return PollOutcome.pending(str(e))
        return PollOutcome.pending()

    return poll(
        poll_spec,
        step,
        clock=clock,
        cancel=cancel,
        on_tick=on_tick,
        description=description,
    )
