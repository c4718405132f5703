"""Worker-side join state machine.

A coordinator runs one node from INIT to MEMBER or FAILED::

    INIT -> PROBING -> FETCHING_TOKEN -> JOINING -> MEMBER
               ^            |               |
               +------------+---------------+   (retry after a fixed interval)
                            |
                          FAILED               (budget spent, cancelled, or escalated)

Every pass through PROBING starts a new attempt. One attempt budget
(``max_retries``) covers all phases, so the total retry time is bounded.
"""

import threading
from enum import Enum

from swarm_bootstrap.exceptions import (
    JoinError,
    JoinFailureReason,
    ProtocolError,
    TokenUnavailableError,
    TransientNetworkError,
)
from swarm_bootstrap.logging_config import get_logger
from swarm_bootstrap.membership import ClusterMembershipManager, with_port
from swarm_bootstrap.models.cluster import JoinResult
from swarm_bootstrap.models.config import BootstrapConfig
from swarm_bootstrap.models.node import ErrorKind, NodeRecord, NodeStatus
from swarm_bootstrap.prober import ProbeResult, ReachabilityProber
from swarm_bootstrap.token_store import TokenSource

logger = get_logger(__name__)

_ERROR_KINDS = {
    TransientNetworkError: ErrorKind.TRANSIENT_NETWORK_ERROR,
    TokenUnavailableError: ErrorKind.TOKEN_UNAVAILABLE,
    ProtocolError: ErrorKind.PROTOCOL_ERROR,
}


class JoinState(str, Enum):
    """States of the join state machine."""

    INIT = "INIT"
    PROBING = "PROBING"
    FETCHING_TOKEN = "FETCHING_TOKEN"
    JOINING = "JOINING"
    MEMBER = "MEMBER"
    FAILED = "FAILED"


class JoinCoordinator:
    """Repeatedly probes the manager, fetches a token and joins until done or out of attempts."""

    def __init__(
        self,
        config: BootstrapConfig,
        record: NodeRecord,
        prober: ReachabilityProber,
        token_source: TokenSource,
        membership: ClusterMembershipManager,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize the coordinator.

        Args:
            config: Bootstrap configuration; manager_address must be set
            record: Record of this node, mutated as the coordinator runs
            prober: Reachability check run before every attempt
            token_source: Where join tokens come from
            membership: Performs the actual join
            cancel_event: Set from another thread or a signal handler to stop at the next boundary
        """
        self.config = config
        self.record = record
        self.prober = prober
        self.token_source = token_source
        self.membership = membership
        self.cancel_event = cancel_event or threading.Event()
        self.state = JoinState.INIT
        self.history: list[JoinState] = [JoinState.INIT]
        self._invalid_token_failures = 0

    @property
    def manager_address(self) -> str:
        return self.config.manager_address

    def cancel(self) -> None:
        """Request cancellation; takes effect at the next probe or sleep."""
        self.cancel_event.set()

    def _enter(self, state: JoinState) -> None:
        logger.debug(f"{self.record.node_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _finish_failed(self, kind: ErrorKind, message: str) -> NodeRecord:
        self._enter(JoinState.FAILED)
        self.record.fail(kind, message)
        logger.error(
            f"{self.record.node_id}: join failed after "
            f"{self.record.join_attempts} attempt(s): {message}"
        )
        return self.record

    def _attempt(self) -> JoinResult:
        """Run one probe/fetch/join pass.

        Raises:
            TransientNetworkError: Manager unreachable, or the join failed on the network
            TokenUnavailableError: No backend had a token
            ProtocolError: The manager rejected the token
        """
        self._enter(JoinState.PROBING)
        probe = self.prober.probe(
            self.manager_address, self.config.swarm_port, self.config.connect_timeout_seconds
        )
        if probe != ProbeResult.REACHABLE:
            raise TransientNetworkError(
                f"manager {with_port(self.manager_address, self.config.swarm_port)} unreachable"
            )

        self._enter(JoinState.FETCHING_TOKEN)
        token = self.token_source.fetch_token(self.manager_address)
        if token is None:
            raise TokenUnavailableError(f"no join token from {self.manager_address}")

        self._enter(JoinState.JOINING)
        try:
            return self.membership.join(token, self.manager_address)
        except JoinError as e:
            if e.reason == JoinFailureReason.INVALID_TOKEN:
                raise ProtocolError(f"manager rejected {token}", e.details)
            raise TransientNetworkError(f"{e.message} ({e.reason.value})", e.details)

    def run(self) -> NodeRecord:
        """
        Drive the node to MEMBER or FAILED.

        Returns:
            The node record in a terminal status. On FAILED, last_error and
            last_error_message describe why.
        """
        max_retries = self.config.max_retries
        self.record.max_attempts = max_retries
        self.record.transition(NodeStatus.JOINING)
        logger.info(
            f"{self.record.node_id}: joining swarm at {self.manager_address} "
            f"(up to {max_retries} attempts, {self.config.retry_interval_seconds}s apart)"
        )

        while True:
            if self.cancel_event.is_set():
                return self._finish_failed(ErrorKind.CANCELLED, "bootstrap cancelled")

            attempt = self.record.record_attempt()
            logger.info(f"{self.record.node_id}: attempt {attempt}/{max_retries}")

            try:
                result = self._attempt()
            except (TransientNetworkError, TokenUnavailableError, ProtocolError) as e:
                kind = _ERROR_KINDS[type(e)]
                message = e.message
                self.record.last_error = kind
                self.record.last_error_message = message
            else:
                self._enter(JoinState.MEMBER)
                self.record.last_error = None
                self.record.last_error_message = None
                self.record.transition(NodeStatus.MEMBER)
                if result == JoinResult.ALREADY_MEMBER:
                    logger.info(f"{self.record.node_id}: already a swarm member")
                logger.info(f"{self.record.node_id}: joined swarm on attempt {attempt}")
                return self.record

            if kind == ErrorKind.PROTOCOL_ERROR:
                self._invalid_token_failures += 1
                if self._invalid_token_failures > 1:
                    # Second rejection in a row escalates
                    return self._finish_failed(kind, message)
            else:
                self._invalid_token_failures = 0

            if attempt >= max_retries:
                return self._finish_failed(kind, message)

            logger.warning(
                f"{self.record.node_id}: attempt {attempt}/{max_retries} failed ({kind.value}: "
                f"{message}), retrying in {self.config.retry_interval_seconds} seconds"
            )
            if self.cancel_event.wait(self.config.retry_interval_seconds):
                return self._finish_failed(ErrorKind.CANCELLED, "bootstrap cancelled")
