# src/utils/quantities.py
"""
레지스트리의 문자열 필드(포트, CPU, 메모리/스토리지 크기)를 검증된 숫자 값으로 변환합니다.

크기 값은 바이트 수와 함께 사용자가 입력한 원래 문자열을 보관하여,
레지스트리에 다시 쓸 때 입력한 그대로 보존되도록 합니다.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

MAX_PORT = 65535

# 1k = 1024 (docker, truncate와 같은 2진 배수)
_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([kmgt]?)(?:i?b)?$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {
    "": 1,
    "k": 1024,
    "m": 1024 ** 2,
    "g": 1024 ** 3,
    "t": 1024 ** 4,
}


class ByteSize(NamedTuple):
    """바이트 수와 원래 입력 문자열"""
    bytes: int
    text: str

    def __str__(self):
        return self.text


def parse_port(text) -> int:
    """
    포트 문자열을 정수로 변환합니다. 빈 값은 0(공개하지 않음)입니다.

    Raises:
        ValueError: 정수가 아니거나 0~65535 범위를 벗어날 때.
    """
    text = str(text).strip() if text is not None else ""
    if text == "":
        return 0
    if not re.fullmatch(r"[0-9]+", text):
        raise ValueError(f"Invalid port {text!r}: must be an integer between 0 and {MAX_PORT}.")
    port = int(text)
    if port > MAX_PORT:
        raise ValueError(f"Invalid port {text!r}: must be an integer between 0 and {MAX_PORT}.")
    return port


def parse_cpus(text) -> Optional[Decimal]:
    """
    CPU 코어 수 문자열(예: '1.5')을 Decimal로 변환합니다.

    빈 값은 '설정하지 않음'을 뜻하는 None이며, '0'과는 구분됩니다.

    Raises:
        ValueError: 음수가 아닌 10진수가 아닐 때.
    """
    text = str(text).strip() if text is not None else ""
    if text == "":
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Invalid CPU count {text!r}: expected a decimal number such as 1.5.")
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid CPU count {text!r}: expected a non-negative decimal number.")
    return value


def parse_byte_size(text) -> ByteSize:
    """
    '512m', '1g', '10G', '1.5GiB', '1048576' 형식의 크기 문자열을 바이트 수로 변환합니다.

    Raises:
        ValueError: 숫자 또는 단위를 해석할 수 없을 때.
    """
    raw = str(text).strip() if text is not None else ""
    match = _SIZE_PATTERN.match(raw)
    if not match:
        raise ValueError(f"Invalid size {raw!r}: expected a number with an optional k/m/g/t suffix.")
    number, unit = match.groups()
    value = int(Decimal(number) * _SIZE_MULTIPLIERS[unit.lower()])
    return ByteSize(value, raw)


def parse_optional_byte_size(text) -> Optional[ByteSize]:
    text = str(text).strip() if text is not None else ""
    if text == "":
        return None
    return parse_byte_size(text)
