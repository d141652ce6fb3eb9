from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional
from src.models import UserRecord

class IUserRecordRepository(ABC):
    @abstractmethod
    def ensure_exists(self) -> None:
        """레지스트리 저장소가 없으면 헤더만 있는 빈 저장소를 만듭니다."""
        pass

    @abstractmethod
    def scan(self) -> Iterator[UserRecord]:
        """레지스트리의 모든 사용자 설정을 순서대로 조회합니다."""
        pass

    @abstractmethod
    def find(self, username: str) -> Optional[UserRecord]:
        """사용자 이름으로 특정 사용자 설정을 조회합니다."""
        pass

    @abstractmethod
    def upsert(self, record: UserRecord) -> UserRecord:
        """같은 사용자 이름의 행을 교체하거나, 없으면 새로 추가합니다."""
        pass

    @abstractmethod
    def delete(self, username: str) -> bool:
        """사용자 설정을 삭제합니다. 원래 없었으면 False를 반환합니다."""
        pass

    @abstractmethod
    def raw_lines(self) -> List[str]:
        """진단(doctor)용으로 저장소의 원본 줄들을 그대로 반환합니다."""
        pass

    @abstractmethod
    def assign_missing_passwords(self, password_factory: Callable[[], str]) -> List[str]:
        """비밀번호가 비어 있는 행에 비밀번호를 채웁니다. 행의 순서는 바뀌지 않습니다."""
        pass
