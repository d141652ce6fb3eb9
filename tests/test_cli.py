# tests/test_cli.py
import pytest
from unittest.mock import MagicMock, patch

from src import cli
from src.models import TeardownReport, UserRecord
from src.services.container_service import ContainerService
from src.services.exceptions import (
    InvalidIdentifierError, RuntimeCommandError, ServiceNotFoundError, ValidationError,
)

@pytest.fixture
def mock_service() -> MagicMock:
    """build_service를 모킹하여 ContainerService 모의 객체를 주입합니다."""
    service = MagicMock(spec=ContainerService)
    with patch("src.cli.build_service", return_value=service):
        yield service

# ===================================================================
#  사용법 오류
# ===================================================================
def test_help_exits_zero(mock_service, capsys):
    assert cli.main(["help"]) == cli.EXIT_OK
    assert "Per-user SSH sandbox" in capsys.readouterr().out

def test_no_command_prints_help_and_fails(mock_service):
    assert cli.main([]) == cli.EXIT_USAGE

def test_unknown_command(mock_service):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["explode", "alice"])
    assert exc_info.value.code == cli.EXIT_USAGE

def test_missing_username(mock_service):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["start"])
    assert exc_info.value.code == cli.EXIT_USAGE
    mock_service.start.assert_not_called()

# ===================================================================
#  오류 종류별 종료 코드
# ===================================================================
@pytest.mark.parametrize("error, expected", [
    (InvalidIdentifierError("bad", rule="empty"), cli.EXIT_VALIDATION),
    (ValidationError("bad port"), cli.EXIT_VALIDATION),
    (ServiceNotFoundError("ghost", "ghost-ssh"), cli.EXIT_NOT_FOUND),
    (RuntimeCommandError("docker failed"), cli.EXIT_RUNTIME),
])
def test_error_exit_codes(mock_service, capsys, error, expected):
    mock_service.start.side_effect = error

    assert cli.main(["start", "alice"]) == expected
    assert str(error) in capsys.readouterr().err

# ===================================================================
#  명령 처리
# ===================================================================
def test_add_passes_positional_values(mock_service, capsys):
    mock_service.add.return_value = UserRecord.create("alice", "2222", "8001", "secret", "1", "512m", "")

    assert cli.main(["add", "alice", "2222", "8001", "secret", "1", "512m"]) == cli.EXIT_OK

    mock_service.add.assert_called_once_with("alice", "2222", "8001", "secret", "1", "512m", "")
    assert "ssh -p 2222 alice@" in capsys.readouterr().out

def test_create_is_alias_of_add(mock_service, capsys):
    mock_service.add.return_value = UserRecord.create("bob", password="generated")

    cli.main(["create", "bob"])

    mock_service.add.assert_called_once_with("bob", "", "", "", "", "", "")
    assert "Generated password: generated" in capsys.readouterr().out

@pytest.mark.parametrize("command", ["start", "stop", "restart", "recreate"])
def test_lifecycle_commands(mock_service, command):
    assert cli.main([command, "alice"]) == cli.EXIT_OK
    getattr(mock_service, command).assert_called_once_with("alice")

def test_remove_with_yes(mock_service, capsys):
    mock_service.remove.return_value = TeardownReport()

    assert cli.main(["remove", "alice", "--yes"]) == cli.EXIT_OK

    mock_service.remove.assert_called_once_with("alice")

def test_remove_cancelled(mock_service, capsys):
    with patch("builtins.input", return_value="n"):
        assert cli.main(["remove", "alice"]) == cli.EXIT_OK

    mock_service.remove.assert_not_called()
    assert "Operation cancelled" in capsys.readouterr().out

def test_remove_without_stdin_is_cancelled(mock_service, capsys):
    """표준 입력이 닫혀 있으면 --yes 없이 삭제하지 않고 취소합니다."""
    with patch("builtins.input", side_effect=EOFError):
        assert cli.main(["remove", "alice"]) == cli.EXIT_OK

    mock_service.remove.assert_not_called()
    assert "Operation cancelled" in capsys.readouterr().out

def test_resources_when_not_running(mock_service, capsys):
    mock_service.resources.return_value = {
        "username": "alice",
        "configured": {"cpus": "1", "memory": "512m (512.00 MiB)", "storage": "anonymous volume"},
        "live": None,
    }

    cli.main(["resources", "alice"])

    assert "unavailable (container not running)" in capsys.readouterr().out

def test_doctor_without_user(mock_service, capsys):
    mock_service.doctor.return_value = {
        "registry": "users.csv", "registry_exists": True, "raw_lines": ["alice,2222\r"],
        "users": ["alice"], "services": ["alice-ssh"], "hints": ["Registry has Windows (CRLF) line endings"],
    }

    assert cli.main(["doctor"]) == cli.EXIT_OK

    mock_service.doctor.assert_called_once_with(None)
    out = capsys.readouterr().out
    assert "'alice,2222\\r'" in out
    assert "hint: Registry has Windows" in out

def test_keyboard_interrupt(mock_service):
    mock_service.logs.side_effect = KeyboardInterrupt

    assert cli.main(["logs", "alice"]) == cli.EXIT_INTERRUPTED

def test_list_shows_registry_and_runtime(mock_service, capsys):
    mock_service.list_users.return_value = [UserRecord.create("alice", "2222", "8001", "pw", "1.5", "512m", "10G")]
    mock_service.list_containers.return_value = "NAMES       STATUS\nalice-ssh   Up 2 minutes\n"

    assert cli.main(["list"]) == cli.EXIT_OK

    out = capsys.readouterr().out
    assert "alice" in out and "512m" in out and "10G" in out
    assert "alice-ssh   Up 2 minutes" in out
