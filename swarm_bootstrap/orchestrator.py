"""Per-node bootstrap driver: initialize the swarm on the manager, join it on workers."""

import threading
from collections.abc import Callable
from enum import IntEnum

from swarm_bootstrap.coordinator import JoinCoordinator
from swarm_bootstrap.exceptions import AlreadyInitializedError, MetadataError, RuntimeCommandError
from swarm_bootstrap.logging_config import get_logger
from swarm_bootstrap.membership import ClusterMembershipManager
from swarm_bootstrap.metadata import get_private_ip
from swarm_bootstrap.models.cluster import MembershipStatus
from swarm_bootstrap.models.config import BootstrapConfig
from swarm_bootstrap.models.node import ErrorKind, NodeRecord, NodeStatus
from swarm_bootstrap.models.token import NodeRole
from swarm_bootstrap.prober import ReachabilityProber
from swarm_bootstrap.runtime import DockerSwarmRuntime
from swarm_bootstrap.token_store import FileTokenStore, TokenSource, build_token_source

logger = get_logger(__name__)

SETUP_COMPLETE = "SETUP_COMPLETE"
SETUP_FAILED = "SETUP_FAILED"


class ExitCode(IntEnum):
    """Process exit codes of a bootstrap run."""

    SUCCESS = 0
    FAILED = 1
    CONFIG_ERROR = 2


class BootstrapOrchestrator:
    """Runs one bootstrap lifecycle for the local node.

    Collaborators default to the real docker, ssh and network implementations
    and can be replaced for testing.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        membership: ClusterMembershipManager | None = None,
        prober: ReachabilityProber | None = None,
        token_source: TokenSource | None = None,
        token_store: FileTokenStore | None = None,
        cancel_event: threading.Event | None = None,
        address_resolver: Callable[[str], str] = get_private_ip,
    ):
        self.config = config
        self.membership = membership or ClusterMembershipManager(
            DockerSwarmRuntime(docker_host=config.docker_host), swarm_port=config.swarm_port
        )
        self.prober = prober or ReachabilityProber()
        self.token_source = token_source or build_token_source(config)
        self.token_store = token_store or FileTokenStore(config.token_dir)
        self.cancel_event = cancel_event or threading.Event()
        self.address_resolver = address_resolver
        self.record = NodeRecord(
            node_id=config.node_id, role=config.role, max_attempts=config.max_retries
        )

    def cancel(self) -> None:
        """Stop at the next probe or retry sleep."""
        self.cancel_event.set()

    def run(self) -> ExitCode:
        """
        Bootstrap the node according to its role.

        Returns:
            SUCCESS when the node is a swarm member (or the manager), FAILED when
            joining gave up, CONFIG_ERROR when the node is misconfigured.
        """
        logger.info(f"Starting bootstrap of {self.config.node_id} as {self.config.role.value}")

        if self.config.role == NodeRole.MANAGER:
            self._run_manager()
        else:
            self._run_worker()

        self._write_status_marker()

        if self.record.status == NodeStatus.MEMBER:
            return ExitCode.SUCCESS
        if self.record.last_error == ErrorKind.CONFIG_ERROR:
            return ExitCode.CONFIG_ERROR
        return ExitCode.FAILED

    def _resolve_address(self) -> str:
        if self.config.advertise_address:
            return self.config.advertise_address
        return self.address_resolver(self.config.metadata_url)

    def _run_manager(self) -> None:
        try:
            advertise_address = self._resolve_address()
        except MetadataError as e:
            self.record.fail(ErrorKind.CONFIG_ERROR, e.message)
            return
        self.record.address = advertise_address

        try:
            try:
                worker_token = self.membership.initialize(advertise_address)
            except AlreadyInitializedError:
                status = self.membership.current_status()
                if status != MembershipStatus.MANAGER:
                    self.record.fail(
                        ErrorKind.CONFIG_ERROR,
                        f"node is already a {status.value.lower()} of another swarm",
                    )
                    return
                logger.info("Swarm already initialized on this node, republishing tokens")
                worker_token = self.membership.issue_token(NodeRole.WORKER)

            manager_token = self.membership.issue_token(NodeRole.MANAGER)
        except RuntimeCommandError as e:
            self.record.fail(ErrorKind.RUNTIME_ERROR, e.message)
            return

        try:
            self.token_store.publish(worker_token, advertise_address)
            self.token_store.publish(manager_token, advertise_address)
        except OSError as e:
            self.record.fail(ErrorKind.RUNTIME_ERROR, f"failed to publish join tokens: {e}")
            return

        self.record.transition(NodeStatus.MEMBER)
        logger.info(f"Manager {self.config.node_id} ready at {advertise_address}")

    def _run_worker(self) -> None:
        try:
            self.record.address = self._resolve_address()
        except MetadataError as e:
            # Only used for reporting on workers
            logger.warning(f"Could not determine this node's private IP: {e.message}")

        logger.info(
            f"Worker IP: {self.record.address or 'unknown'}, manager: {self.config.manager_address}"
        )

        coordinator = JoinCoordinator(
            self.config,
            self.record,
            self.prober,
            self.token_source,
            self.membership,
            cancel_event=self.cancel_event,
        )
        coordinator.run()

    def _write_status_marker(self) -> None:
        if not self.config.status_file:
            return
        marker = SETUP_COMPLETE if self.record.status == NodeStatus.MEMBER else SETUP_FAILED
        try:
            self.config.status_file.parent.mkdir(parents=True, exist_ok=True)
            self.config.status_file.write_text(marker + "\n")
        except OSError as e:
            logger.warning(f"Failed to write status file {self.config.status_file}: {e}")
