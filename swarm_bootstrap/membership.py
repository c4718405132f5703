"""Swarm membership: initializing a new swarm or joining an existing one."""

from swarm_bootstrap.exceptions import (
    AlreadyInitializedError,
    JoinError,
    JoinFailureReason,
    RuntimeCommandError,
)
from swarm_bootstrap.logging_config import get_logger
from swarm_bootstrap.models.cluster import JoinResult, MembershipStatus
from swarm_bootstrap.models.token import ClusterToken, NodeRole
from swarm_bootstrap.runtime import DockerSwarmRuntime

logger = get_logger(__name__)

DEFAULT_SWARM_PORT = 2377

_ALREADY_MEMBER_MARKERS = ("already part of a swarm",)
_INVALID_TOKEN_MARKERS = ("invalid join token", "token is not valid", "invalid token")
_TIMEOUT_MARKERS = ("timeout was reached", "timed out", "deadline exceeded")


def classify_join_failure(stderr: str) -> JoinFailureReason:
    """Map docker's join error output to a failure reason."""
    text = stderr.lower()
    if any(marker in text for marker in _ALREADY_MEMBER_MARKERS):
        return JoinFailureReason.ALREADY_MEMBER
    if any(marker in text for marker in _INVALID_TOKEN_MARKERS):
        return JoinFailureReason.INVALID_TOKEN
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return JoinFailureReason.TIMEOUT
    return JoinFailureReason.NETWORK_ERROR


def with_port(address: str, port: int = DEFAULT_SWARM_PORT) -> str:
    """Append the swarm port unless `address` already carries one."""
    if address.startswith("["):
        return address if "]:" in address else f"{address}:{port}"
    if address.count(":") == 1:
        return address
    if ":" in address:
        # Bare IPv6 address
        return f"[{address}]:{port}"
    return f"{address}:{port}"


class ClusterMembershipManager:
    """Decides between creating a swarm and joining one, on top of a runtime."""

    def __init__(self, runtime: DockerSwarmRuntime, swarm_port: int = DEFAULT_SWARM_PORT):
        """Initialize the manager.

        Args:
            runtime: Swarm runtime control surface (docker CLI or a test double)
            swarm_port: Port appended to manager addresses given without one
        """
        self.runtime = runtime
        self.swarm_port = swarm_port

    def current_status(self) -> MembershipStatus:
        """Return the local node's swarm membership."""
        return self.runtime.current_status()

    def initialize(self, advertise_address: str) -> ClusterToken:
        """
        Create a new swarm with this node as manager.

        Args:
            advertise_address: Address other nodes use to reach this manager

        Returns:
            The worker join token of the new swarm.

        Raises:
            AlreadyInitializedError: If the node is already in a swarm. Initializing
                again would fork the cluster, so the runtime is left untouched.
            RuntimeCommandError: If the runtime fails to create the swarm
        """
        status = self.current_status()
        if status.is_active:
            raise AlreadyInitializedError(
                "Node is already part of a swarm",
                f"Current membership: {status.value}. Leave the swarm first to create a new one.",
            )

        try:
            self.runtime.initialize(advertise_address)
        except RuntimeCommandError as e:
            if classify_join_failure(e.stderr) == JoinFailureReason.ALREADY_MEMBER:
                raise AlreadyInitializedError("Node is already part of a swarm", e.stderr)
            raise

        token = self.issue_token(NodeRole.WORKER)
        logger.info(f"Swarm initialized on {advertise_address}")
        return token

    def issue_token(self, role: NodeRole) -> ClusterToken:
        """Read the current join token for `role`. Only valid on a manager."""
        return ClusterToken(value=self.runtime.issue_token(role), role=role)

    def join(self, token: ClusterToken, manager_address: str) -> JoinResult:
        """
        Join the swarm managed at `manager_address`.

        Joining is idempotent: a node that is already in a swarm reports
        ALREADY_MEMBER, which callers treat as success.

        Args:
            token: Join token issued by the manager
            manager_address: Manager host, optionally with port

        Returns:
            JOINED or ALREADY_MEMBER

        Raises:
            JoinError: With reason InvalidToken, NetworkError or Timeout
        """
        address = with_port(manager_address, self.swarm_port)

        try:
            if self.current_status().is_active:
                logger.info("Node is already part of a swarm, nothing to join")
                return JoinResult.ALREADY_MEMBER
            self.runtime.join(token.value, address)
        except RuntimeCommandError as e:
            reason = classify_join_failure(e.stderr or e.message)
            if reason == JoinFailureReason.ALREADY_MEMBER:
                logger.info("Runtime reports node already in a swarm")
                return JoinResult.ALREADY_MEMBER
            logger.warning(f"Join to {address} failed ({reason.value}): {e.stderr or e.message}")
            raise JoinError(reason, f"Failed to join swarm at {address}", e.stderr or e.details)

        # Same check as `docker info | grep "Swarm: active"`
        try:
            status = self.current_status()
        except RuntimeCommandError as e:
            raise JoinError(
                JoinFailureReason.NETWORK_ERROR, "Could not verify swarm membership", e.message
            )
        if not status.is_active:
            raise JoinError(
                JoinFailureReason.NETWORK_ERROR,
                f"Joined {address} but the node is not active in the swarm",
            )

        logger.info(f"Joined swarm at {address} as {status.value}")
        return JoinResult.JOINED
