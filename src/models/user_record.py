# src/models/user_record.py
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional

from src.utils.identifier import validate_username
from src.utils.quantities import (
    ByteSize, parse_port, parse_cpus, parse_byte_size, parse_optional_byte_size,
)

FIELD_NAMES = ("user", "ssh_port", "web_port", "password", "cpus", "memory", "storage")


@dataclass(frozen=True)
class UserRecord:
    """
    레지스트리의 한 행으로, 한 사용자의 컨테이너 설정을 나타냅니다.
    사용자 한 명당 하나의 SSH 컨테이너(<username>-ssh)가 만들어집니다.

    storage는 원래 문자열 그대로 보관합니다. 해석할 수 없는 값이면
    전용 파일시스템 대신 익명 볼륨으로 동작해야 하기 때문입니다 (storage_size 참고).
    """
    username: str
    ssh_port: int = 0
    web_port: int = 0
    password: str = ""
    cpus: Optional[Decimal] = None
    memory: Optional[ByteSize] = None
    storage: str = ""

    @property
    def service_name(self) -> str:
        return f"{self.username}-ssh"

    @property
    def hostname(self) -> str:
        return f"{self.username}-workspace"

    @property
    def volume_name(self) -> str:
        return f"{self.username}-data"

    def storage_size(self) -> Optional[ByteSize]:
        """
        전용 스토리지 크기를 반환합니다. 요청하지 않았으면 None입니다.

        Raises:
            ValueError: storage 값을 해석할 수 없을 때.
        """
        if not self.storage:
            return None
        return parse_byte_size(self.storage)

    def with_password(self, password: str) -> "UserRecord":
        return replace(self, password=password)

    @classmethod
    def create(cls, username, ssh_port="", web_port="", password="", cpus="", memory="", storage=""):
        """
        사람이 입력한 문자열 값들로부터 검증된 UserRecord를 만듭니다.

        Raises:
            InvalidIdentifierError: 사용자 이름이 규칙에 맞지 않을 때.
            ValueError: 포트, CPU, 메모리 값을 해석할 수 없을 때.
        """
        validate_username(username)
        password = (password or "").strip()
        if "," in password or ":" in password:
            # 레지스트리 구분자(,)와 USERS 환경 변수 구분자(:)는 비밀번호에 쓸 수 없습니다.
            raise ValueError("Password must not contain ',' or ':'.")
        return cls(
            username=username,
            ssh_port=parse_port(ssh_port),
            web_port=parse_port(web_port),
            password=password,
            cpus=parse_cpus(cpus),
            memory=parse_optional_byte_size(memory),
            storage=(storage or "").strip(),
        )

    @classmethod
    def from_row(cls, cells: List[str]) -> "UserRecord":
        """레지스트리의 한 행(열 목록)을 UserRecord로 변환합니다. 모자란 열은 기본값으로 채웁니다."""
        cells = [c.strip() for c in cells] + [""] * (len(FIELD_NAMES) - len(cells))
        return cls.create(*cells[:len(FIELD_NAMES)])

    def to_row(self) -> List[str]:
        return [
            self.username,
            str(self.ssh_port),
            str(self.web_port),
            self.password,
            str(self.cpus) if self.cpus is not None else "",
            self.memory.text if self.memory is not None else "",
            self.storage,
        ]
