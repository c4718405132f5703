"""Data models for node bootstrap records."""

from enum import Enum

from pydantic import BaseModel, Field

from swarm_bootstrap.exceptions import InvalidTransitionError
from swarm_bootstrap.models.token import NodeRole


class NodeStatus(str, Enum):
    """Lifecycle status of a bootstrapping node."""

    PENDING = "PENDING"
    JOINING = "JOINING"
    MEMBER = "MEMBER"
    FAILED = "FAILED"


class ErrorKind(str, Enum):
    """Category of the last error seen by a node."""

    CONFIG_ERROR = "ConfigError"
    TRANSIENT_NETWORK_ERROR = "TransientNetworkError"
    TOKEN_UNAVAILABLE = "TokenUnavailable"
    PROTOCOL_ERROR = "ProtocolError"
    CANCELLED = "Cancelled"
    RUNTIME_ERROR = "RuntimeError"


# Status only ever moves forward; MEMBER and FAILED are terminal
_ALLOWED_TRANSITIONS: dict[NodeStatus, set[NodeStatus]] = {
    NodeStatus.PENDING: {NodeStatus.JOINING, NodeStatus.MEMBER, NodeStatus.FAILED},
    NodeStatus.JOINING: {NodeStatus.MEMBER, NodeStatus.FAILED},
    NodeStatus.MEMBER: set(),
    NodeStatus.FAILED: set(),
}


class NodeRecord(BaseModel):
    """A node taking part in the bootstrap, from process start to a terminal status."""

    node_id: str
    role: NodeRole
    address: str | None = None
    status: NodeStatus = NodeStatus.PENDING
    join_attempts: int = 0
    max_attempts: int = Field(default=10, ge=1)
    last_error: ErrorKind | None = None
    last_error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether the node has reached MEMBER or FAILED."""
        return self.status in (NodeStatus.MEMBER, NodeStatus.FAILED)

    def transition(self, status: NodeStatus) -> None:
        """Move the node to a new status.

        Args:
            status: Target status

        Raises:
            InvalidTransitionError: If the move would go backwards or leave a terminal status
        """
        if status == self.status and status == NodeStatus.JOINING:
            return
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Node {self.node_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def record_attempt(self) -> int:
        """Count a new join attempt.

        Returns:
            The attempt number just started (1-based)

        Raises:
            InvalidTransitionError: If the attempt budget is already spent
        """
        if self.join_attempts >= self.max_attempts:
            raise InvalidTransitionError(
                f"Node {self.node_id} has already used all {self.max_attempts} join attempts"
            )
        self.join_attempts += 1
        return self.join_attempts

    def fail(self, kind: ErrorKind, message: str | None = None) -> None:
        """Record the final error and mark the node FAILED."""
        self.last_error = kind
        self.last_error_message = message
        self.transition(NodeStatus.FAILED)

    def summary(self) -> str:
        """Single-line terminal status for the operator."""
        line = f"node {self.node_id}: {self.status.value}"
        if self.join_attempts:
            line += f" after {self.join_attempts} attempt(s)"
        if self.status == NodeStatus.FAILED and self.last_error:
            line += f" ({self.last_error.value}"
            if self.last_error_message:
                line += f": {self.last_error_message}"
            line += ")"
        return line
