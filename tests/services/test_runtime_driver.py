# tests/services/test_runtime_driver.py
import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from src.services.runtime_driver import DockerComposeRuntime
from src.services.exceptions import RuntimeCommandError

COMPOSE = "/srv/sshbox/docker-compose.yml"

def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)

@pytest.fixture
def mock_run() -> MagicMock:
    """subprocess.run을 모킹하여 실제 docker가 호출되지 않도록 합니다."""
    with patch("src.services.runtime_driver.subprocess.run") as run:
        run.return_value = _completed()
        yield run

@pytest.fixture
def runtime() -> DockerComposeRuntime:
    return DockerComposeRuntime(compose_file=COMPOSE, docker_bin="docker")

def _last_command(mock_run):
    return mock_run.call_args.args[0]

# ===================================================================
#  수명 주기 명령
# ===================================================================
@pytest.mark.parametrize("method, expected_args", [
    ("apply", ["up", "--no-start", "alice-ssh"]),
    ("start", ["up", "-d", "alice-ssh"]),
    ("stop", ["stop", "alice-ssh"]),
    ("restart", ["restart", "alice-ssh"]),
    ("recreate", ["up", "-d", "--force-recreate", "alice-ssh"]),
])
def test_compose_lifecycle_commands(runtime, mock_run, method, expected_args):
    getattr(runtime, method)("alice-ssh")

    assert _last_command(mock_run) == ["docker", "compose", "-f", COMPOSE] + expected_args

def test_remove_uses_container_name(runtime, mock_run):
    runtime.remove("alice-ssh")

    assert _last_command(mock_run) == ["docker", "rm", "--force", "alice-ssh"]

def test_failure_surfaces_runtime_diagnostic(runtime, mock_run):
    """docker가 실패하면 재시도 없이 docker의 오류 메시지를 담아 예외를 던집니다."""
    mock_run.return_value = _completed(1, stderr="no such service: alice-ssh\n")

    with pytest.raises(RuntimeCommandError) as exc_info:
        runtime.start("alice-ssh")

    assert "no such service: alice-ssh" in str(exc_info.value)
    assert exc_info.value.stderr == "no such service: alice-ssh"
    assert mock_run.call_count == 1

def test_missing_docker_binary(runtime, mock_run):
    mock_run.side_effect = FileNotFoundError()

    with pytest.raises(RuntimeCommandError, match="command not found"):
        runtime.stop("alice-ssh")

# ===================================================================
#  조회
# ===================================================================
def test_container_id(runtime, mock_run):
    mock_run.return_value = _completed(stdout="abc123\n")

    assert runtime.container_id("alice-ssh") == "abc123"
    assert _last_command(mock_run)[-4:] == ["ps", "-a", "-q", "alice-ssh"]

def test_container_id_absent(runtime, mock_run):
    mock_run.return_value = _completed(stdout="")

    assert runtime.container_id("alice-ssh") is None

def test_inspect_limits_of_running_container(runtime, mock_run):
    # === Arrange ===
    inspect_output = json.dumps([{
        "State": {"Running": True},
        "HostConfig": {"NanoCpus": 1500000000, "CpuQuota": 0, "CpuPeriod": 0,
                       "Memory": 536870912, "MemoryReservation": 536870912},
    }])
    mock_run.side_effect = [_completed(stdout="abc123\n"), _completed(stdout=inspect_output)]

    # === Act ===
    limits = runtime.inspect_limits("alice-ssh")

    # === Assert ===
    assert limits == {"NanoCpus": 1500000000, "CpuQuota": 0, "CpuPeriod": 0,
                      "Memory": 536870912, "MemoryReservation": 536870912}
    assert _last_command(mock_run) == ["docker", "inspect", "abc123"]

def test_inspect_limits_of_stopped_container_is_none(runtime, mock_run):
    """실행 중이 아닌 컨테이너의 제한 값은 0이 아니라 None(알 수 없음)입니다."""
    inspect_output = json.dumps([{"State": {"Running": False}, "HostConfig": {"NanoCpus": 1}}])
    mock_run.side_effect = [_completed(stdout="abc123\n"), _completed(stdout=inspect_output)]

    assert runtime.inspect_limits("alice-ssh") is None

def test_inspect_limits_without_container_is_none(runtime, mock_run):
    mock_run.return_value = _completed(stdout="")

    assert runtime.inspect_limits("alice-ssh") is None

def test_is_running(runtime, mock_run):
    mock_run.side_effect = [_completed(stdout="abc\n"), _completed(stdout='[{"State": {"Running": true}}]')]

    assert runtime.is_running("alice-ssh") is True

def test_is_running_false_for_stopped_or_missing_container(runtime, mock_run):
    mock_run.side_effect = [_completed(stdout="abc\n"), _completed(stdout='[{"State": {"Running": false}}]')]
    assert runtime.is_running("alice-ssh") is False

    mock_run.side_effect = [_completed(stdout="")]
    assert runtime.is_running("alice-ssh") is False

def test_published_port(runtime, mock_run):
    mock_run.return_value = _completed(stdout="0.0.0.0:2222\n[::]:2222\n")

    assert runtime.published_port("alice-ssh", 22) == 2222
    assert _last_command(mock_run) == ["docker", "port", "alice-ssh", "22"]

def test_published_port_when_not_running(runtime, mock_run):
    mock_run.return_value = _completed(1, stderr="No such container")

    assert runtime.published_port("alice-ssh", 22) is None

def test_volume_and_container_exists(runtime, mock_run):
    mock_run.return_value = _completed(1)
    assert runtime.volume_exists("alice-data") is False
    assert runtime.container_exists("alice-ssh") is False

    mock_run.return_value = _completed(0)
    assert runtime.volume_exists("alice-data") is True
    assert runtime.container_exists("alice-ssh") is True

# ===================================================================
#  대화형 명령
# ===================================================================
def test_logs_streams_to_terminal(runtime, mock_run):
    runtime.logs("alice-ssh")

    mock_run.assert_called_once_with(["docker", "compose", "-f", COMPOSE, "logs", "-f", "alice-ssh"])

def test_shell_opens_interactive_session(runtime, mock_run):
    runtime.shell("alice-ssh")

    mock_run.assert_called_once_with(["docker", "exec", "-it", "alice-ssh", "/bin/bash"])
