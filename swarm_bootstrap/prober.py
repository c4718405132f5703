"""Network reachability checks used before join attempts."""

import socket
from enum import Enum

from swarm_bootstrap.logging_config import get_logger

logger = get_logger(__name__)


class ProbeResult(str, Enum):
    """Outcome of a reachability probe."""

    REACHABLE = "Reachable"
    UNREACHABLE = "Unreachable"

    def __bool__(self) -> bool:
        return self is ProbeResult.REACHABLE


class ReachabilityProber:
    """Tests TCP connectivity to a host and port.

    A probe is a single connection attempt. It never retries and never raises
    for network failures; retrying is up to the caller.
    """

    def probe(self, address: str, port: int, timeout: float) -> ProbeResult:
        """
        Try to open a TCP connection to `address:port`.

        Args:
            address: Hostname or IP address
            port: TCP port
            timeout: Seconds to wait for the connection

        Returns:
            ProbeResult.REACHABLE if the connection was accepted, else UNREACHABLE.
        """
        logger.debug(f"Probing {address}:{port} (timeout {timeout}s)")
        try:
            with socket.create_connection((address, port), timeout=timeout):
                pass
        except (OSError, UnicodeError) as e:
            # Names that cannot be IDNA-encoded raise UnicodeError
            logger.debug(f"{address}:{port} unreachable: {e}")
            return ProbeResult.UNREACHABLE

        logger.debug(f"{address}:{port} reachable")
        return ProbeResult.REACHABLE
