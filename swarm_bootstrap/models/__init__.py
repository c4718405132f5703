"""Data models for swarm bootstrap state and configuration."""

from swarm_bootstrap.models.cluster import JoinResult, MembershipStatus
from swarm_bootstrap.models.config import BootstrapConfig
from swarm_bootstrap.models.node import ErrorKind, NodeRecord, NodeStatus
from swarm_bootstrap.models.token import ClusterToken, NodeRole

__all__ = [
    "BootstrapConfig",
    "ClusterToken",
    "ErrorKind",
    "JoinResult",
    "MembershipStatus",
    "NodeRecord",
    "NodeRole",
    "NodeStatus",
]
