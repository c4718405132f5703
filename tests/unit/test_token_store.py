"""Unit tests for join token backends."""

import stat
import subprocess
from unittest.mock import Mock, patch

from swarm_bootstrap.models.token import ClusterToken, NodeRole
from swarm_bootstrap.token_store import (
    ChainedTokenSource,
    FileTokenStore,
    RuntimeTokenSource,
    SshTokenSource,
    build_token_source,
)
from tests.fakes import ScriptedTokenSource


def _completed(stdout: str) -> Mock:
    result = Mock()
    result.stdout = stdout
    result.returncode = 0
    return result


def test_file_store_publish_then_fetch(tmp_path, worker_token):
    store = FileTokenStore(tmp_path / "tokens")

    path = store.publish(worker_token, "10.0.1.5")

    assert path == tmp_path / "tokens" / "worker-token"
    assert (tmp_path / "tokens" / "manager-ip").read_text() == "10.0.1.5\n"
    assert stat.S_IMODE(path.stat().st_mode) == 0o600

    fetched = store.fetch_token("10.0.1.5")
    assert fetched.value == worker_token.value
    assert fetched.role == NodeRole.WORKER


def test_file_store_fetch_is_repeatable(tmp_path, worker_token):
    store = FileTokenStore(tmp_path)
    store.publish(worker_token, "10.0.1.5")

    assert store.fetch_token("10.0.1.5").value == worker_token.value
    assert store.fetch_token("10.0.1.5").value == worker_token.value


def test_file_store_missing_token(tmp_path):
    assert FileTokenStore(tmp_path).fetch_token("10.0.1.5") is None


def test_file_store_token_for_other_manager(tmp_path, worker_token):
    store = FileTokenStore(tmp_path)
    store.publish(worker_token, "10.0.1.5")

    assert store.fetch_token("10.0.2.5") is None


def test_file_store_empty_token_file(tmp_path):
    (tmp_path / "worker-token").write_text("\n")

    assert FileTokenStore(tmp_path).fetch_token("10.0.1.5") is None


def test_file_store_undecodable_token_file(tmp_path):
    (tmp_path / "worker-token").write_bytes(b"\xff\xfe garbage")

    assert FileTokenStore(tmp_path).fetch_token("10.0.1.5") is None


def test_file_store_undecodable_manager_ip_file(tmp_path, worker_token):
    store = FileTokenStore(tmp_path)
    store.publish(worker_token, "10.0.1.5")
    (tmp_path / "manager-ip").write_bytes(b"\xff\xfe")

    assert store.fetch_token("10.0.1.5") is None


def test_file_store_keeps_roles_apart(tmp_path, worker_token):
    store = FileTokenStore(tmp_path)
    store.publish(worker_token, "10.0.1.5")
    store.publish(ClusterToken(value="SWMTKN-1-manager-secret", role=NodeRole.MANAGER), "10.0.1.5")

    manager_store = FileTokenStore(tmp_path, role=NodeRole.MANAGER)
    assert manager_store.fetch_token("10.0.1.5").value == "SWMTKN-1-manager-secret"
    assert store.fetch_token("10.0.1.5").value == worker_token.value


def test_ssh_command():
    source = SshTokenSource(user="ubuntu", key_file="/home/ubuntu/.ssh/id_rsa", connect_timeout=5)

    cmd = source.build_command("10.0.1.5")

    assert cmd[0] == "ssh"
    assert "StrictHostKeyChecking=no" in cmd
    assert "ConnectTimeout=5" in cmd
    assert cmd[cmd.index("-i") + 1] == "/home/ubuntu/.ssh/id_rsa"
    assert cmd[-2:] == ["ubuntu@10.0.1.5", "sudo docker swarm join-token -q worker"]


def test_ssh_fetch(worker_token):
    with patch("subprocess.run", return_value=_completed(worker_token.value + "\n")) as mock_run:
        token = SshTokenSource().fetch_token("10.0.1.5")

    assert token.value == worker_token.value
    assert mock_run.call_args[1]["check"] is True
    assert "-i" not in mock_run.call_args[0][0]


def test_ssh_failures_are_not_available():
    failures = [
        subprocess.CalledProcessError(255, ["ssh"], stderr="Connection refused"),
        subprocess.TimeoutExpired(["ssh"], 30),
        FileNotFoundError(),
        UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
    ]
    for failure in failures:
        with patch("subprocess.run", side_effect=failure):
            assert SshTokenSource().fetch_token("10.0.1.5") is None


def test_ssh_empty_output_is_not_available():
    with patch("subprocess.run", return_value=_completed("")):
        assert SshTokenSource().fetch_token("10.0.1.5") is None


def test_runtime_source_queries_manager_engine(worker_token):
    with patch("subprocess.run", return_value=_completed(worker_token.value)) as mock_run:
        token = RuntimeTokenSource(docker_api_port=2375).fetch_token("10.0.1.5")

    assert token.value == worker_token.value
    assert mock_run.call_args[0][0] == [
        "docker",
        "-H",
        "tcp://10.0.1.5:2375",
        "swarm",
        "join-token",
        "-q",
        "worker",
    ]


def test_runtime_source_failure_is_not_available():
    error = subprocess.CalledProcessError(
        1, ["docker"], stderr="Cannot connect to the Docker daemon"
    )

    with patch("subprocess.run", side_effect=error):
        assert RuntimeTokenSource().fetch_token("10.0.1.5") is None


def test_chain_returns_first_token(worker_token):
    empty = ScriptedTokenSource(None)
    found = ScriptedTokenSource(worker_token)
    never = ScriptedTokenSource(worker_token)

    token = ChainedTokenSource([empty, found, never]).fetch_token("10.0.1.5")

    assert token == worker_token
    assert empty.calls == ["10.0.1.5"]
    assert found.calls == ["10.0.1.5"]
    assert never.calls == []


def test_chain_with_no_token():
    assert ChainedTokenSource([ScriptedTokenSource(None)]).fetch_token("10.0.1.5") is None


def test_build_single_source(make_config):
    source = build_token_source(make_config(token_sources=["file"]))

    assert isinstance(source, FileTokenStore)


def test_build_chain_in_configured_order(make_config):
    config = make_config(
        token_sources=["runtime", "file", "ssh"], ssh_user="admin", connect_timeout_seconds=3
    )

    source = build_token_source(config)

    assert isinstance(source, ChainedTokenSource)
    assert [s.name for s in source.sources] == ["runtime", "file", "ssh"]
    assert source.sources[2].user == "admin"
    assert source.sources[2].connect_timeout == 3


def test_runtime_source_undecodable_output_is_not_available():
    error = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    with patch("subprocess.run", side_effect=error):
        assert RuntimeTokenSource().fetch_token("10.0.1.5") is None
