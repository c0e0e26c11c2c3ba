"""Error taxonomy and classification for convergence polling.

Remote API failures are translated into an ErrorKind once, at the API
boundary. Operations then ask an ErrorClassifier what an error means for the
poll loop: the desired state was already reached, keep retrying, or stop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

# Markers the cluster API puts in its error text
NOT_FOUND_MARKER = "not found"
IN_PROGRESS_MARKER = "object is being deleted"


class ErrorKind(Enum):
    """What a remote API error says about the target resource."""

    NOT_FOUND = "not_found"  # Resource absent
    IN_PROGRESS = "in_progress"  # Requested transition already under way
    OTHER = "other"


class ErrorClass(Enum):
    """What an error means for the poll loop."""

    BENIGN_TERMINAL = "benign_terminal"
    TRANSIENT = "transient"
    FATAL = "fatal"


class HarnessError(Exception):
    """Base error for the harness."""


class ConfigError(HarnessError):
    """Invalid harness configuration."""


@dataclass
class ResourceAPIError(HarnessError):
    """A call against the remote resource API failed."""

    message: str
    kind: ErrorKind = ErrorKind.OTHER
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    @property
    def is_in_progress(self) -> bool:
        return self.kind is ErrorKind.IN_PROGRESS


class ConvergenceError(HarnessError):
    """An operation finished without converging."""

    def __init__(self, message: str, result: Any = None):
        self.message = message
        self.result = result
        super().__init__(message)


def kind_from_message(message: str) -> ErrorKind:
    """Map raw API error text to an ErrorKind.

    The in-progress marker is checked first so that a message carrying both
    markers is never mistaken for an absent resource.
    """
    if IN_PROGRESS_MARKER in message:
        return ErrorKind.IN_PROGRESS
    if NOT_FOUND_MARKER in message:
        return ErrorKind.NOT_FOUND
    return ErrorKind.OTHER


def error_kind(err: BaseException) -> ErrorKind:
    """Get the kind of any error.

    ResourceAPIError already carries its kind. Errors raised by foreign
    callables fall back to matching their text.
    """
    if isinstance(err, ResourceAPIError):
        return err.kind
    return kind_from_message(str(err))


def is_not_found(err: BaseException | None) -> bool:
    """Whether err reports that the resource does not exist."""
    return err is not None and error_kind(err) is ErrorKind.NOT_FOUND


class ErrorClassifier:
    """Classify errors for the poll loop.

    Absent resources and in-progress transitions are benign-terminal; each
    lifecycle operation decides whether that means done or keep waiting.
    Every other error is transient. Nothing is fatal unless a ``fatal``
    predicate is given, so the default policy waits out eventual consistency
    until the deadline rather than failing fast.
    """

    def __init__(self, fatal: Callable[[BaseException], bool] | None = None):
        """Initialize classifier.

        Args:
            fatal: Optional predicate selecting errors that must stop polling.
        """
        self.fatal = fatal

    def classify(self, err: BaseException) -> ErrorClass:
        """Classify a single error."""
        if error_kind(err) in (ErrorKind.NOT_FOUND, ErrorKind.IN_PROGRESS):
            return ErrorClass.BENIGN_TERMINAL
        if self.fatal is not None and self.fatal(err):
            return ErrorClass.FATAL
        return ErrorClass.TRANSIENT


DEFAULT_CLASSIFIER = ErrorClassifier()
