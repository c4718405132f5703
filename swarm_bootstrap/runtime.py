"""Docker Swarm runtime control through the docker CLI."""

import subprocess

from swarm_bootstrap.exceptions import RuntimeCommandError
from swarm_bootstrap.logging_config import get_logger
from swarm_bootstrap.models.cluster import MembershipStatus
from swarm_bootstrap.models.token import NodeRole

logger = get_logger(__name__)

SWARM_STATE_FORMAT = "{{.Swarm.LocalNodeState}} {{.Swarm.ControlAvailable}}"


class DockerSwarmRuntime:
    """Runs `docker swarm` subcommands against a local or remote engine."""

    def __init__(
        self, docker_host: str | None = None, timeout: int = 60, docker_bin: str = "docker"
    ):
        """Initialize the runtime.

        Args:
            docker_host: Engine address passed as `-H` (e.g. tcp://10.0.1.5:2375); local when None
            timeout: Seconds to wait for each docker command
            docker_bin: Name or path of the docker binary
        """
        self.docker_host = docker_host
        self.timeout = timeout
        self.docker_bin = docker_bin

    def _command(self, *args: str) -> list[str]:
        cmd = [self.docker_bin]
        if self.docker_host:
            cmd += ["-H", self.docker_host]
        return cmd + list(args)

    def _run(self, *args: str) -> str:
        cmd = self._command(*args)
        # Never log the join token argument
        shown = ["<token>" if i and cmd[i - 1] == "--token" else arg for i, arg in enumerate(cmd)]
        logger.debug(f"Running: {' '.join(shown)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"docker {args[0]} timed out after {self.timeout} seconds")
            raise RuntimeCommandError(
                f"docker {' '.join(args[:2])} timed out",
                "The docker daemon did not respond in time. "
                "Check it is running: sudo systemctl status docker",
                stderr="Timeout was reached",
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            logger.debug(f"docker {args[0]} failed with return code {e.returncode}: {stderr}")
            raise RuntimeCommandError(
                f"docker {' '.join(args[:2])} failed",
                stderr,
                stderr=stderr,
                returncode=e.returncode,
            )
        except FileNotFoundError:
            logger.error("docker binary not found in PATH")
            raise RuntimeCommandError(
                "Docker is not installed or not in PATH",
                "Install Docker Engine from https://docs.docker.com/engine/install/\n"
                "Or ensure the 'docker' command is in your PATH",
            )
        except UnicodeDecodeError as e:
            logger.error(f"docker {args[0]} produced output that is not valid UTF-8")
            raise RuntimeCommandError(
                f"docker {' '.join(args[:2])} returned unreadable output", str(e)
            )

        return result.stdout.strip()

    def initialize(self, advertise_address: str) -> None:
        """Create a new swarm with this node as its first manager."""
        logger.info(f"Initializing swarm advertising {advertise_address}")
        self._run("swarm", "init", "--advertise-addr", advertise_address)

    def join(self, token: str, address: str) -> None:
        """Join the swarm managed at `address` (host:port)."""
        logger.info(f"Joining swarm at {address}")
        self._run("swarm", "join", "--token", token, address)

    def issue_token(self, role: NodeRole) -> str:
        """Return the current join token for `role` from a manager."""
        return self._run("swarm", "join-token", "-q", role.token_kind)

    def current_status(self) -> MembershipStatus:
        """Read the node's swarm membership from `docker info`."""
        output = self._run("info", "--format", SWARM_STATE_FORMAT)
        parts = output.split()
        state = parts[0] if parts else ""
        control_available = len(parts) > 1 and parts[1] == "true"

        if state != "active":
            # inactive, pending, locked and error all mean the node cannot serve yet
            logger.debug(f"Swarm local node state: {state or 'unknown'}")
            return MembershipStatus.UNCONFIGURED
        if control_available:
            return MembershipStatus.MANAGER
        return MembershipStatus.MEMBER
