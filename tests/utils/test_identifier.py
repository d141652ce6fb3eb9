# tests/utils/test_identifier.py
import pytest

from src.utils.identifier import validate_username, is_valid_username
from src.services.exceptions import InvalidIdentifierError, ValidationError

@pytest.mark.parametrize("name", ["alice", "a.b_c-9", "Bob", "9lives", "a" * 63])
def test_valid_usernames_are_accepted(name):
    """규칙에 맞는 사용자 이름은 그대로 반환됩니다."""
    assert validate_username(name) == name
    assert is_valid_username(name)

@pytest.mark.parametrize("name, rule", [
    ("", "empty"),
    ("-bad", "leading-hyphen"),
    ("a" * 64, "too-long"),
    ("al/ice", "invalid-character"),
    ("al ice", "invalid-character"),
    (".hidden", "invalid-character"),
    ("alice\n", "invalid-character"),
])
def test_invalid_usernames_are_rejected_with_distinct_rules(name, rule):
    """각 위반 사례가 서로 다른 규칙 이름과 함께 거부되는지 테스트합니다."""
    with pytest.raises(InvalidIdentifierError) as exc_info:
        validate_username(name)

    assert exc_info.value.rule == rule
    assert not is_valid_username(name)

def test_invalid_identifier_is_a_validation_error():
    with pytest.raises(ValidationError):
        validate_username("-rf")

def test_error_messages_are_distinct():
    """규칙마다 사용자에게 보여지는 메시지도 서로 달라야 합니다."""
    messages = set()
    for name in ["", "-bad", "a" * 64, "a/b"]:
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate_username(name)
        messages.add(str(exc_info.value))
    assert len(messages) == 4
