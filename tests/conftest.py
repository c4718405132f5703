"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from swarm_bootstrap.membership import ClusterMembershipManager
from swarm_bootstrap.models.config import BootstrapConfig
from swarm_bootstrap.models.token import ClusterToken, NodeRole
from tests.fakes import FakeRuntime, InMemorySwarm

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

MANAGER_IP = "10.0.1.5"


@pytest.fixture
def swarm():
    """An empty in-memory swarm."""
    return InMemorySwarm()


@pytest.fixture
def manager_runtime(swarm):
    """Runtime of the node that will initialize the swarm."""
    return FakeRuntime(swarm, MANAGER_IP)


@pytest.fixture
def manager_membership(manager_runtime):
    return ClusterMembershipManager(manager_runtime)


@pytest.fixture
def worker_token():
    """A syntactically valid worker token that no swarm knows about."""
    return ClusterToken(
        value="SWMTKN-1-3pu6hszjas19xyp7ghgosyx9k8atbfcr8p2is99znpy26u2lkl-1awxwuwd3z9j1z3puu7rcgdbx",
        role=NodeRole.WORKER,
    )


@pytest.fixture
def make_config(tmp_path):
    """Factory for worker configs with fast, test-friendly defaults."""

    def _make(**overrides):
        data = {
            "role": "WORKER",
            "manager_address": MANAGER_IP,
            "node_id": "worker-1",
            "max_retries": 5,
            "retry_interval_seconds": 30,
            "connect_timeout_seconds": 10,
            "token_sources": ["file"],
            "token_dir": tmp_path / "tokens",
        }
        data.update(overrides)
        return BootstrapConfig(**data)

    return _make
