"""Unit tests for error kinds and classification."""

import pytest

from convergence_harness.errors import (
    DEFAULT_CLASSIFIER,
    ErrorClass,
    ErrorClassifier,
    ErrorKind,
    ResourceAPIError,
    error_kind,
    is_not_found,
    kind_from_message,
)

NOT_FOUND_TEXT = 'Error from server (NotFound): statefulsets.apps "etcd" not found'
IN_PROGRESS_TEXT = (
    'Operation cannot be fulfilled on machines.cluster.k8s.io "m-1": '
    "the object is being deleted"
)


class TestKindFromMessage:
    """Tests for mapping raw error text to an ErrorKind."""

    def test_not_found(self):
        assert kind_from_message(NOT_FOUND_TEXT) is ErrorKind.NOT_FOUND

    def test_in_progress(self):
        assert kind_from_message(IN_PROGRESS_TEXT) is ErrorKind.IN_PROGRESS

    def test_in_progress_wins_over_not_found(self):
        """Test a message with both markers is treated as in progress."""
        message = "object is being deleted: finalizer not found"
        assert kind_from_message(message) is ErrorKind.IN_PROGRESS

    @pytest.mark.parametrize(
        "message",
        ["connection refused", "the server is currently unable to handle the request", ""],
    )
    def test_other(self, message):
        assert kind_from_message(message) is ErrorKind.OTHER


class TestErrorKind:
    """Tests for resolving the kind of arbitrary errors."""

    def test_resource_api_error_uses_its_kind(self):
        """Test the boundary kind wins over the message text."""
        err = ResourceAPIError("kubectl not found. Is kubectl installed?", kind=ErrorKind.OTHER)
        assert error_kind(err) is ErrorKind.OTHER

    def test_plain_exception_falls_back_to_text(self):
        assert error_kind(RuntimeError(NOT_FOUND_TEXT)) is ErrorKind.NOT_FOUND
        assert error_kind(RuntimeError(IN_PROGRESS_TEXT)) is ErrorKind.IN_PROGRESS
        assert error_kind(RuntimeError("timeout")) is ErrorKind.OTHER

    def test_is_not_found(self):
        assert is_not_found(ResourceAPIError("gone", kind=ErrorKind.NOT_FOUND)) is True
        assert is_not_found(RuntimeError("boom")) is False
        assert is_not_found(None) is False


class TestResourceAPIError:
    """Tests for ResourceAPIError."""

    def test_str_is_message(self):
        err = ResourceAPIError("boom", data={"resource": "deployment/apps/web"})
        assert str(err) == "boom"
        assert err.kind is ErrorKind.OTHER
        assert err.data["resource"] == "deployment/apps/web"

    def test_kind_properties(self):
        assert ResourceAPIError("x", kind=ErrorKind.NOT_FOUND).is_not_found is True
        assert ResourceAPIError("x", kind=ErrorKind.IN_PROGRESS).is_in_progress is True
        assert ResourceAPIError("x").is_not_found is False

    def test_can_be_raised(self):
        with pytest.raises(ResourceAPIError, match="boom"):
            raise ResourceAPIError("boom")


class TestErrorClassifier:
    """Tests for ErrorClassifier policies."""

    def test_not_found_is_benign_terminal(self):
        err = ResourceAPIError(NOT_FOUND_TEXT, kind=ErrorKind.NOT_FOUND)
        assert DEFAULT_CLASSIFIER.classify(err) is ErrorClass.BENIGN_TERMINAL

    def test_in_progress_is_benign_terminal(self):
        err = ResourceAPIError(IN_PROGRESS_TEXT, kind=ErrorKind.IN_PROGRESS)
        assert DEFAULT_CLASSIFIER.classify(err) is ErrorClass.BENIGN_TERMINAL

    @pytest.mark.parametrize(
        "err",
        [
            ResourceAPIError("connection refused"),
            ResourceAPIError("Forbidden: user cannot delete"),
            PermissionError("denied"),
            ValueError("bad"),
            TimeoutError("slow"),
        ],
    )
    def test_default_policy_never_fatal(self, err):
        """Test the default policy retries every ordinary error."""
        assert DEFAULT_CLASSIFIER.classify(err) is ErrorClass.TRANSIENT

    def test_fatal_predicate(self):
        """Test a custom policy can stop polling on chosen errors."""
        classifier = ErrorClassifier(fatal=lambda e: isinstance(e, PermissionError))

        assert classifier.classify(PermissionError("denied")) is ErrorClass.FATAL
        assert classifier.classify(RuntimeError("flaky")) is ErrorClass.TRANSIENT

    def test_fatal_predicate_does_not_override_absence(self):
        """Test benign-terminal errors are never fatal."""
        classifier = ErrorClassifier(fatal=lambda e: True)
        err = ResourceAPIError("gone", kind=ErrorKind.NOT_FOUND)

        assert classifier.classify(err) is ErrorClass.BENIGN_TERMINAL
