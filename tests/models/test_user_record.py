# tests/models/test_user_record.py
from decimal import Decimal

import pytest

from src.models import UserRecord, TeardownReport
from src.services.exceptions import InvalidIdentifierError

def test_create_parses_quantities():
    record = UserRecord.create("alice", "2222", "8001", "secret", "1.5", "512m", "10G")

    assert record.ssh_port == 2222
    assert record.web_port == 8001
    assert record.cpus == Decimal("1.5")
    assert record.memory.bytes == 512 * 1024 ** 2
    assert record.storage_size().bytes == 10 * 1024 ** 3

def test_derived_names():
    record = UserRecord.create("alice")

    assert record.service_name == "alice-ssh"
    assert record.hostname == "alice-workspace"
    assert record.volume_name == "alice-data"

def test_row_round_trip_keeps_original_text():
    """레지스트리에 다시 쓸 때 사용자가 입력한 표기를 그대로 유지합니다."""
    cells = ["alice", "2222", "8001", "secret", "0.5", "1G", "20g"]

    assert UserRecord.from_row(cells).to_row() == cells

def test_from_row_fills_missing_columns():
    record = UserRecord.from_row(["bob"])

    assert record.to_row() == ["bob", "0", "0", "", "", "", ""]

def test_storage_size_absent_and_invalid():
    assert UserRecord.create("alice").storage_size() is None
    with pytest.raises(ValueError):
        UserRecord.create("alice", storage="5X").storage_size()

def test_invalid_username():
    with pytest.raises(InvalidIdentifierError):
        UserRecord.create("")

def test_password_separators_are_rejected():
    with pytest.raises(ValueError):
        UserRecord.create("alice", password="a:b")

def test_teardown_report_summary():
    report = TeardownReport()
    report.record("remove container", True)
    report.record("unmount storage", False, "busy")

    assert not report.ok
    assert report.summary() == "1/2 cleanup step(s) completed; failed: unmount storage."
