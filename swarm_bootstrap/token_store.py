"""Join token storage and retrieval backends.

The manager publishes its join tokens once; workers fetch them as many times
as they need. Every backend answers ``fetch_token(manager_address)`` with a
``ClusterToken`` or ``None`` when no token is available yet. ``None`` is a
normal answer while the manager is still starting, so backends log failures
instead of raising them.
"""

import os
import subprocess
import tempfile
from pathlib import Path

from pydantic import ValidationError

from swarm_bootstrap.exceptions import RuntimeCommandError
from swarm_bootstrap.logging_config import get_logger
from swarm_bootstrap.models.config import BootstrapConfig
from swarm_bootstrap.models.token import ClusterToken, NodeRole
from swarm_bootstrap.runtime import DockerSwarmRuntime

logger = get_logger(__name__)

MANAGER_IP_FILE = "manager-ip"


def _parse_token(raw: str, role: NodeRole, source: str) -> ClusterToken | None:
    try:
        return ClusterToken(value=raw, role=role)
    except ValidationError:
        logger.warning(f"{source} returned an empty or malformed {role.token_kind} token")
        return None


class TokenSource:
    """Interface for anything that can produce a join token for a manager."""

    name = "token source"

    def fetch_token(self, manager_address: str) -> ClusterToken | None:
        raise NotImplementedError


class FileTokenStore(TokenSource):
    """Token files in a directory, e.g. a shared mount or a path synced from the manager.

    Layout (one value per file): ``worker-token``, ``manager-token`` and ``manager-ip``.
    """

    name = "file"

    def __init__(self, token_dir: str | Path, role: NodeRole = NodeRole.WORKER):
        self.token_dir = Path(token_dir)
        self.role = role

    def token_path(self, role: NodeRole) -> Path:
        return self.token_dir / f"{role.token_kind}-token"

    def fetch_token(self, manager_address: str) -> ClusterToken | None:
        path = self.token_path(self.role)
        if not path.exists():
            logger.debug(f"Token file not present yet: {path}")
            return None

        ip_path = self.token_dir / MANAGER_IP_FILE
        if ip_path.exists():
            try:
                published_for = ip_path.read_text().strip()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read manager address file {ip_path}: {e}")
                return None
            if published_for and published_for != manager_address:
                logger.warning(
                    f"Token file {path} belongs to manager {published_for}, not {manager_address}"
                )
                return None

        try:
            raw = path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read token file {path}: {e}")
            return None

        return _parse_token(raw, self.role, f"Token file {path}")

    def publish(self, token: ClusterToken, manager_address: str) -> Path:
        """Write a token and the manager address for joiners to pick up.

        Returns:
            Path of the written token file

        Raises:
            OSError: If the directory or files cannot be written
        """
        self.token_dir.mkdir(parents=True, exist_ok=True)
        path = self.token_path(token.role)
        self._write_atomic(path, token.value + "\n", mode=0o600)
        self._write_atomic(self.token_dir / MANAGER_IP_FILE, manager_address + "\n", mode=0o644)
        logger.info(f"Published {token} to {path}")
        return path

    def _write_atomic(self, path: Path, content: str, mode: int) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class SshTokenSource(TokenSource):
    """Asks the manager for its token over SSH."""

    name = "ssh"

    def __init__(
        self,
        user: str = "ubuntu",
        key_file: str | Path | None = None,
        connect_timeout: int = 10,
        role: NodeRole = NodeRole.WORKER,
    ):
        self.user = user
        self.key_file = key_file
        self.connect_timeout = connect_timeout
        self.role = role

    def build_command(self, manager_address: str) -> list[str]:
        cmd = [
            "ssh",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
        ]
        if self.key_file:
            cmd += ["-i", str(self.key_file)]
        cmd += [
            f"{self.user}@{manager_address}",
            f"sudo docker swarm join-token -q {self.role.token_kind}",
        ]
        return cmd

    def fetch_token(self, manager_address: str) -> ClusterToken | None:
        cmd = self.build_command(manager_address)
        logger.debug(f"Fetching {self.role.token_kind} token via ssh from {manager_address}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                # Remote command gets some time on top of the connection
                timeout=self.connect_timeout + 20,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"ssh to {manager_address} timed out")
            return None
        except subprocess.CalledProcessError as e:
            logger.warning(
                f"ssh token fetch from {manager_address} failed with return code "
                f"{e.returncode}: {(e.stderr or '').strip()}"
            )
            return None
        except FileNotFoundError:
            logger.error("ssh binary not found in PATH")
            return None
        except UnicodeDecodeError:
            logger.warning(f"ssh token fetch from {manager_address} returned non-UTF-8 output")
            return None

        return _parse_token(result.stdout, self.role, f"ssh {manager_address}")


class RuntimeTokenSource(TokenSource):
    """Reads the token straight from the manager's Docker engine API."""

    name = "runtime"

    def __init__(
        self, docker_api_port: int = 2375, timeout: int = 10, role: NodeRole = NodeRole.WORKER
    ):
        self.docker_api_port = docker_api_port
        self.timeout = timeout
        self.role = role

    def runtime_for(self, manager_address: str) -> DockerSwarmRuntime:
        return DockerSwarmRuntime(
            docker_host=f"tcp://{manager_address}:{self.docker_api_port}", timeout=self.timeout
        )

    def fetch_token(self, manager_address: str) -> ClusterToken | None:
        try:
            raw = self.runtime_for(manager_address).issue_token(self.role)
        except RuntimeCommandError as e:
            logger.warning(f"Docker API token fetch from {manager_address} failed: {e.message}")
            return None
        return _parse_token(raw, self.role, f"Docker API at {manager_address}")


class ChainedTokenSource(TokenSource):
    """Tries each backend in order and returns the first token found."""

    name = "chain"

    def __init__(self, sources: list[TokenSource]):
        if not sources:
            raise ValueError("at least one token source is required")
        self.sources = sources

    def fetch_token(self, manager_address: str) -> ClusterToken | None:
        for source in self.sources:
            token = source.fetch_token(manager_address)
            if token is not None:
                logger.info(f"Got {token} from {source.name} backend")
                return token
            logger.debug(f"No token from {source.name} backend")
        return None


def build_token_source(config: BootstrapConfig, role: NodeRole = NodeRole.WORKER) -> TokenSource:
    """Build the backend chain named by ``config.token_sources``."""
    sources: list[TokenSource] = []
    for name in config.token_sources:
        if name == "file":
            sources.append(FileTokenStore(config.token_dir, role=role))
        elif name == "ssh":
            sources.append(
                SshTokenSource(
                    user=config.ssh_user,
                    key_file=config.ssh_key,
                    connect_timeout=config.connect_timeout_seconds,
                    role=role,
                )
            )
        elif name == "runtime":
            sources.append(
                RuntimeTokenSource(
                    docker_api_port=config.docker_api_port,
                    timeout=config.connect_timeout_seconds,
                    role=role,
                )
            )
    if len(sources) == 1:
        return sources[0]
    return ChainedTokenSource(sources)
