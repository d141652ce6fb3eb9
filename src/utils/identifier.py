# src/utils/identifier.py
import re

from src.services.exceptions import InvalidIdentifierError

# 사용자 이름은 <user>-workspace 호스트명에 들어가므로 호스트명 길이 제한(63자)을 따릅니다.
MAX_IDENTIFIER_LENGTH = 63
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,62}$")


def validate_username(name):
    """
    사용자 이름이 컨테이너/서비스/볼륨 이름의 재료로 쓰일 수 있는지 검사합니다.

    규칙은 순서대로 검사하며, 처음 위반한 규칙을 담은 예외를 즉시 발생시킵니다.

    Args:
        name: 검사할 사용자 이름.

    Returns:
        검증을 통과한 사용자 이름 (입력 그대로).

    Raises:
        InvalidIdentifierError: 빈 값, '-'로 시작, 63자 초과, 허용되지 않은 문자가 포함된 경우.
    """
    if not name:
        raise InvalidIdentifierError("Username must not be empty.", rule="empty")
    if name.startswith("-"):
        # 이후 명령행 인자로 들어갔을 때 옵션으로 해석되는 것을 막습니다.
        raise InvalidIdentifierError(
            f"Username '{name}' must not begin with a hyphen.", rule="leading-hyphen"
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(
            f"Username must be at most {MAX_IDENTIFIER_LENGTH} characters (got {len(name)}).",
            rule="too-long",
        )
    if not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(
            f"Username '{name}' may only contain letters, digits, '.', '_' and '-', "
            f"and must start with a letter or digit.",
            rule="invalid-character",
        )
    return name


def is_valid_username(name):
    try:
        validate_username(name)
    except InvalidIdentifierError:
        return False
    return True
