import csv
import fcntl
import io
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from src import config
from src.models import UserRecord
from src.repositories.interfaces import IUserRecordRepository
from src.services.exceptions import RegistryLockError, ValidationError
from src.utils.identifier import validate_username

logger = logging.getLogger(__name__)


class CsvUserRecordRepository(IUserRecordRepository):
    """
    콤마로 구분된 평문 레지스트리 파일(user,ssh_port,web_port,password,cpus,memory,storage)을 다룹니다.

    빈 줄, '#'으로 시작하는 줄, 첫 데이터 줄 위치의 헤더 줄은 무시합니다.
    수정은 임시 파일에 쓴 뒤 rename으로 교체하며, 읽기-수정-쓰기 구간은
    <registry>.lock 파일에 대한 flock으로 보호합니다.
    """

    def __init__(self, path=None, lock_timeout=None):
        self.path = Path(path or config.REGISTRY_PATH)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = config.REGISTRY_LOCK_TIMEOUT if lock_timeout is None else lock_timeout

    @contextmanager
    def _locked(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o600)
        try:
            start = time.time()
            while True:
                try:
                    fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.time() - start > self.lock_timeout:
                        raise RegistryLockError(f"Could not acquire lock on {self.lock_path}")
                    time.sleep(0.1)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)

    def ensure_exists(self) -> None:
        if self.path.exists():
            return
        with self._locked():
            if not self.path.exists():
                self._write_atomic(config.REGISTRY_HEADER + "\n")
                logger.info("Created registry file %s", self.path)

    def raw_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', newline='') as f:
            return f.read().split('\n')

    def _rows(self, text: str):
        """
        파일의 각 줄을 (줄 번호, 원본 줄, 열 목록)으로 돌려줍니다.
        주석, 빈 줄, 첫 데이터 줄 위치의 헤더는 열 목록이 None입니다.
        """
        seen_data = False
        for lineno, raw in enumerate(text.split('\n'), start=1):
            # 다른 OS에서 편집된 파일의 \r을 제거합니다.
            line = raw.strip().strip('\r').strip()
            if not line or line.startswith('#'):
                yield lineno, raw, None
                continue
            cells = next(csv.reader([line]))
            if not seen_data and _is_header(cells):
                seen_data = True
                yield lineno, raw, None
                continue
            seen_data = True
            yield lineno, raw, cells

    def _parse(self, text: str) -> Iterator[UserRecord]:
        for lineno, _, cells in self._rows(text):
            if cells is None:
                continue
            try:
                yield UserRecord.from_row(cells)
            except (ValueError, ValidationError) as e:
                logger.warning("%s:%d: skipping invalid row: %s", self.path, lineno, e)

    def _read_text(self) -> str:
        if not self.path.exists():
            return ""
        with open(self.path, 'r', newline='') as f:
            return f.read()

    def scan(self) -> Iterator[UserRecord]:
        self.ensure_exists()
        return self._parse(self._read_text())

    def find(self, username: str) -> Optional[UserRecord]:
        for record in self.scan():
            if record.username == username:
                return record
        return None

    def upsert(self, record: UserRecord) -> UserRecord:
        validate_username(record.username)
        with self._locked():
            lines, _ = self._lines_without(self._read_text(), record.username)
            lines.append(self._format_row(record))
            self._write_atomic("\n".join(lines) + "\n")
        return record

    def delete(self, username: str) -> bool:
        with self._locked():
            text = self._read_text()
            lines, removed = self._lines_without(text, username)
            if not removed:
                return False
            self._write_atomic("\n".join(lines) + "\n")
        return True

    def assign_missing_passwords(self, password_factory: Callable[[], str]) -> List[str]:
        """
        비밀번호가 빈 행을 제자리에서 채웁니다.

        한 번의 잠금 구간에서 파일 전체를 다시 쓰므로 행 순서와 주석이 그대로 유지됩니다.

        Returns:
            비밀번호를 새로 받은 사용자 이름 목록.
        """
        assigned = []
        with self._locked():
            lines = []
            for _, raw, cells in self._rows(self._read_text()):
                # 잘못된 행은 scan에서 경고하므로 여기서는 그대로 둡니다.
                try:
                    record = UserRecord.from_row(cells) if cells is not None else None
                except (ValueError, ValidationError):
                    record = None
                if record is not None and not record.password:
                    record = record.with_password(password_factory())
                    assigned.append(record.username)
                    lines.append(self._format_row(record))
                else:
                    lines.append(raw.rstrip('\r'))
            if assigned:
                while lines and not lines[-1].strip():
                    lines.pop()
                self._write_atomic("\n".join(lines) + "\n")
        return assigned

    def _lines_without(self, text: str, username: str):
        """
        username의 행을 뺀 나머지 줄들과 제거한 행의 수를 반환합니다.
        주석과 헤더는 그대로 보존하고, 파일 끝의 빈 줄은 정리합니다.
        """
        kept = []
        removed = 0
        for _, raw, cells in self._rows(text):
            if cells is not None and cells[0].strip() == username:
                removed += 1
                continue
            kept.append(raw.rstrip('\r'))
        while kept and not kept[-1].strip():
            kept.pop()
        if not kept:
            kept = [config.REGISTRY_HEADER]
        return kept, removed

    def _format_row(self, record: UserRecord) -> str:
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator='').writerow(record.to_row())
        return buffer.getvalue()

    def _write_atomic(self, content: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', newline='') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            # 기존 파일 권한을 유지합니다 (새 파일은 mkstemp의 0600).
            if self.path.exists():
                os.chmod(tmp_path, self.path.stat().st_mode & 0o777)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def _is_header(cells) -> bool:
    # 'user'라는 사용자의 행과 구분하기 위해 모든 열이 헤더 이름과 같아야 헤더로 봅니다.
    names = config.REGISTRY_HEADER.split(',')
    normalized = [cell.strip().lower() for cell in cells]
    return len(normalized) <= len(names) and normalized == names[:len(normalized)]
