"""Shared fixtures for convergence-harness tests."""

import pytest

from convergence_harness.config import HarnessConfig
from convergence_harness.operations import ResourceRef
from tests.fakes import FakeClock, FakeResourceAPI


@pytest.fixture
def clock():
    """Virtual clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def api():
    """Fake resource API where every call succeeds."""
    return FakeResourceAPI()


@pytest.fixture
def ref():
    """A workload reference."""
    return ResourceRef("deployment", "web", "apps")


@pytest.fixture
def harness_config():
    """Config with a 1s interval and 5s budget."""
    return HarnessConfig(poll_interval=1.0, deletion_timeout=5.0)
