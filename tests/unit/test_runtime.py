"""Unit tests for the docker CLI runtime."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from swarm_bootstrap.exceptions import RuntimeCommandError
from swarm_bootstrap.models.cluster import MembershipStatus
from swarm_bootstrap.models.token import NodeRole
from swarm_bootstrap.runtime import SWARM_STATE_FORMAT, DockerSwarmRuntime


def _completed(stdout: str) -> Mock:
    result = Mock()
    result.stdout = stdout
    result.returncode = 0
    return result


@pytest.mark.parametrize(
    "output,expected",
    [
        ("active true\n", MembershipStatus.MANAGER),
        ("active false\n", MembershipStatus.MEMBER),
        ("inactive false\n", MembershipStatus.UNCONFIGURED),
        ("pending false\n", MembershipStatus.UNCONFIGURED),
        ("locked false\n", MembershipStatus.UNCONFIGURED),
        ("", MembershipStatus.UNCONFIGURED),
    ],
)
def test_current_status(output, expected):
    with patch("subprocess.run", return_value=_completed(output)) as mock_run:
        assert DockerSwarmRuntime().current_status() == expected

    assert mock_run.call_args[0][0] == ["docker", "info", "--format", SWARM_STATE_FORMAT]


def test_initialize_command():
    with patch("subprocess.run", return_value=_completed("Swarm initialized")) as mock_run:
        DockerSwarmRuntime().initialize("10.0.1.5")

    assert mock_run.call_args[0][0] == ["docker", "swarm", "init", "--advertise-addr", "10.0.1.5"]
    assert mock_run.call_args[1]["capture_output"] is True
    assert mock_run.call_args[1]["text"] is True
    assert mock_run.call_args[1]["check"] is True


def test_join_command_with_remote_host():
    runtime = DockerSwarmRuntime(docker_host="tcp://10.0.1.9:2375")

    with patch("subprocess.run", return_value=_completed("")) as mock_run:
        runtime.join("SWMTKN-1-abc", "10.0.1.5:2377")

    assert mock_run.call_args[0][0] == [
        "docker",
        "-H",
        "tcp://10.0.1.9:2375",
        "swarm",
        "join",
        "--token",
        "SWMTKN-1-abc",
        "10.0.1.5:2377",
    ]


def test_issue_token_strips_output():
    with patch("subprocess.run", return_value=_completed("SWMTKN-1-abc\n")) as mock_run:
        assert DockerSwarmRuntime().issue_token(NodeRole.MANAGER) == "SWMTKN-1-abc"

    assert mock_run.call_args[0][0] == ["docker", "swarm", "join-token", "-q", "manager"]


def test_failed_command_raises_with_stderr():
    error = subprocess.CalledProcessError(
        1, ["docker", "swarm", "join"], stderr="Error response from daemon: invalid join token\n"
    )

    with patch("subprocess.run", side_effect=error):
        with pytest.raises(RuntimeCommandError) as exc_info:
            DockerSwarmRuntime().join("SWMTKN-1-abc", "10.0.1.5:2377")

    assert exc_info.value.returncode == 1
    assert exc_info.value.stderr == "Error response from daemon: invalid join token"


def test_timeout_raises():
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(["docker"], 60)):
        with pytest.raises(RuntimeCommandError, match="timed out"):
            DockerSwarmRuntime().current_status()


def test_missing_docker_binary():
    with patch("subprocess.run", side_effect=FileNotFoundError()):
        with pytest.raises(RuntimeCommandError) as exc_info:
            DockerSwarmRuntime().current_status()

    assert "not installed" in exc_info.value.message


def test_undecodable_output_raises():
    error = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    with patch("subprocess.run", side_effect=error):
        with pytest.raises(RuntimeCommandError, match="unreadable output"):
            DockerSwarmRuntime().issue_token(NodeRole.WORKER)
