import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from src import config
from src.models import UserRecord, TeardownReport
from src.repositories.interfaces import IUserRecordRepository
from src.services.exceptions import (
    InvalidIdentifierError,
    RuntimeCommandError,
    ServiceNotFoundError,
    ValidationError,
)
from src.services.runtime_driver import DockerComposeRuntime
from src.services.storage_service import StorageService
from src.utils.compose_generator import generate_compose, render_compose, service_names, dedicated_storage
from src.utils.identifier import validate_username
from src.utils.passwords import generate_password
from src.utils.resource_limits import cpu_limit, describe_host_config, format_memory, UNLIMITED

logger = logging.getLogger(__name__)

PASSWORD_PLACEHOLDER = "<generated-on-next-compile>"


class ContainerService:
    def __init__(
        self,
        record_repo: IUserRecordRepository,
        storage_service: StorageService,
        runtime: DockerComposeRuntime,
        compose_file=None,
    ):
        """
        ContainerService를 초기화합니다.

        레지스트리를 유일한 진실의 원천으로 삼아, compose 파일 생성, 전용 스토리지 준비,
        docker 호출을 순서대로 조합해 사용자 컨테이너의 수명 주기를 관리합니다.

        Args:
            record_repo: 사용자 설정 레지스트리에 접근하기 위한 리포지토리.
            storage_service: 사용자별 전용 스토리지를 관리하는 서비스.
            runtime: docker compose를 호출하는 런타임 드라이버.
            compose_file: 생성한 compose 파일을 쓸 경로. 기본값은 config.COMPOSE_FILE.
        """
        self.record_repo = record_repo
        self.storage_service = storage_service
        self.runtime = runtime
        self.compose_file = Path(compose_file or config.COMPOSE_FILE)

    # ------------------------------------------------------------------
    # compose 파일 생성
    # ------------------------------------------------------------------
    def generate(self) -> Dict[str, Any]:
        """
        레지스트리 전체로부터 compose 파일을 새로 만들어 씁니다.

        비밀번호가 비어 있는 행은 먼저 비밀번호를 생성해 레지스트리에 저장하므로,
        레지스트리가 바뀌지 않는 한 몇 번을 호출해도 같은 파일이 만들어집니다.

        Returns:
            생성된 compose 문서(dict).
        """
        self.record_repo.ensure_exists()
        self._ensure_passwords()
        document = self._compile(self.record_repo.scan())
        self._write_compose(render_compose(document))
        return document

    def _compile(self, records, password_factory=generate_password) -> Dict[str, Any]:
        return generate_compose(
            records,
            storage_dir=self.storage_service.storage_dir,
            password_factory=password_factory,
        )

    def _ensure_passwords(self):
        for username in self.record_repo.assign_missing_passwords(generate_password):
            logger.info("Generated a password for user '%s'.", username)

    def _write_compose(self, content: str):
        if self.compose_file.exists() and self.compose_file.read_text() == content:
            return
        self.compose_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.compose_file.parent, prefix=f".{self.compose_file.name}.")
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(content)
            os.replace(tmp_path, self.compose_file)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info("Wrote %s", self.compose_file)

    def _require_service(self, username: str) -> UserRecord:
        """compose 파일을 새로 만든 뒤, 그 안에 사용자의 서비스가 있는지 확인합니다."""
        validate_username(username)
        document = self.generate()
        service = f"{username}-ssh"
        if service not in service_names(document):
            raise ServiceNotFoundError(username, service)
        return self.record_repo.find(username)

    def _provision_storage(self, record: UserRecord):
        """
        전용 스토리지를 준비합니다.

        이미지를 늘려야 하는데 컨테이너가 실행 중이면 먼저 중지합니다. 실행 중인 컨테이너는
        기존 loop 마운트를 잡고 있어 e2fsck/resize2fs 대상이 될 수 없습니다.
        중지된 컨테이너는 다음 시작 때 새 마운트를 바인드합니다.
        """
        if not record.storage:
            return
        if (self.storage_service.needs_growth(record.username, record.storage)
                and self.runtime.is_running(record.service_name)):
            logger.info("Stopping '%s' to grow its storage.", record.service_name)
            self.runtime.stop(record.service_name)
        self.storage_service.provision(record.username, record.storage)

    # ------------------------------------------------------------------
    # 수명 주기
    # ------------------------------------------------------------------
    def add(self, username, ssh_port="", web_port="", password="", cpus="", memory="", storage="") -> UserRecord:
        """
        사용자를 레지스트리에 추가(또는 갱신)하고 컨테이너를 시작합니다.

        검증을 모두 통과한 뒤에만 레지스트리에 쓰며, 그 다음 compose 파일 생성,
        전용 스토리지 준비, 해당 서비스 적용 및 시작을 순서대로 수행합니다.

        Args:
            username: 사용자 이름.
            ssh_port: SSH(22)를 공개할 호스트 포트. 빈 값이나 0이면 공개하지 않습니다.
            web_port: 웹(8000)을 공개할 호스트 포트. 빈 값이나 0이면 공개하지 않습니다.
            password: 비밀번호. 비어 있으면 생성합니다.
            cpus: CPU 코어 수 제한 (예: '1.5'). 비어 있으면 제한 없음.
            memory: 메모리 제한 (예: '512m'). 비어 있으면 제한 없음.
            storage: 전용 스토리지 크기 (예: '10G'). 비어 있으면 익명 볼륨 사용.

        Returns:
            레지스트리에 저장된 UserRecord.

        Raises:
            InvalidIdentifierError: 사용자 이름이 규칙에 맞지 않을 때.
            ValidationError: 포트, CPU, 메모리 값이 잘못되었거나 포트가 다른 사용자와 겹칠 때.
            RuntimeCommandError: 스토리지 준비 또는 docker 호출이 실패했을 때.
        """
        try:
            record = UserRecord.create(username, ssh_port, web_port, password, cpus, memory, storage)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self._check_port_conflicts(record)

        if not record.password:
            record = record.with_password(generate_password())
            logger.info("Generated a password for user '%s'.", username)

        self.record_repo.upsert(record)
        self.generate()
        self._provision_storage(record)
        self.runtime.apply(record.service_name)
        self.runtime.start(record.service_name)
        return record

    def _check_port_conflicts(self, record: UserRecord):
        if record.ssh_port and record.ssh_port == record.web_port:
            raise ValidationError(f"SSH and web ports must differ (both {record.ssh_port}).")
        wanted = {p for p in (record.ssh_port, record.web_port) if p}
        for other in self.record_repo.scan():
            if other.username == record.username:
                continue
            clash = wanted & {other.ssh_port, other.web_port}
            if clash:
                raise ValidationError(
                    f"Port {min(clash)} is already published by user '{other.username}'."
                )

    def start(self, username: str):
        record = self._require_service(username)
        self._provision_storage(record)
        self.runtime.start(record.service_name)

    def stop(self, username: str):
        record = self._require_service(username)
        self.runtime.stop(record.service_name)

    def restart(self, username: str):
        record = self._require_service(username)
        self._provision_storage(record)
        self.runtime.restart(record.service_name)

    def recreate(self, username: str):
        """CPU/메모리 제한 변경처럼 단순 재시작으로는 반영되지 않는 변경을 위해 컨테이너를 새로 만듭니다."""
        record = self._require_service(username)
        self._provision_storage(record)
        self.runtime.recreate(record.service_name)

    def remove(self, username: str) -> TeardownReport:
        """
        사용자의 컨테이너, 볼륨, 전용 스토리지를 정리하고 레지스트리에서 삭제합니다.

        정리 단계는 각각 독립적으로 시도하며 실패해도 다음 단계로 넘어갑니다.
        정리 결과와 관계없이 레지스트리 행은 반드시 삭제되고 compose 파일도 다시 만들어집니다.

        Args:
            username: 삭제할 사용자 이름.

        Returns:
            각 정리 단계의 성공/실패를 담은 TeardownReport.

        Raises:
            InvalidIdentifierError: 사용자 이름이 규칙에 맞지 않을 때.
        """
        validate_username(username)
        service = f"{username}-ssh"
        volume = f"{username}-data"
        report = TeardownReport()

        try:
            # 런타임 정리
            self._attempt(report, 'remove container', self._remove_container, service)
            self._attempt(report, 'remove volume', self._remove_volume, volume)
            # 스토리지 정리
            report.extend(self.storage_service.teardown(username))
        finally:
            # 최종적으로 레지스트리에서 삭제하고 compose 파일에서도 제거
            if self.record_repo.delete(username):
                logger.info("Deleted registry row for '%s'.", username)
            else:
                logger.info("User '%s' was not in the registry.", username)
            self.generate()

        if not report.ok:
            logger.warning("Removal of '%s' finished with failures: %s", username, report.summary())
        return report

    def _attempt(self, report: TeardownReport, name: str, func, *args):
        try:
            if func(*args):
                report.record(name, True)
        except RuntimeCommandError as e:
            logger.warning("Teardown step '%s' failed: %s", name, e)
            report.record(name, False, str(e))

    def _remove_container(self, service: str) -> bool:
        if not self.runtime.container_exists(service):
            return False
        self.runtime.remove(service)
        return True

    def _remove_volume(self, volume: str) -> bool:
        if not self.runtime.volume_exists(volume):
            return False
        self.runtime.remove_volume(volume)
        return True

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------
    def get_user(self, username: str) -> UserRecord:
        validate_username(username)
        record = self.record_repo.find(username)
        if record is None:
            raise ServiceNotFoundError(username, f"{username}-ssh")
        return record

    def list_users(self) -> List[UserRecord]:
        return list(self.record_repo.scan())

    def list_containers(self) -> str:
        """런타임이 보고하는 *-ssh 컨테이너 표 (중지된 컨테이너 포함)."""
        return self.runtime.list_containers()

    def resources(self, username: str) -> Dict[str, Any]:
        """
        레지스트리에 설정된 제한 값과 실행 중인 컨테이너의 실제 제한 값을 나란히 보여줍니다.

        컨테이너가 실행 중이 아니면 live는 None입니다 (0으로 채우지 않습니다).

        Raises:
            ServiceNotFoundError: 레지스트리에 사용자가 없을 때.
        """
        record = self.get_user(username)
        configured = {
            "cpus": cpu_limit(record.cpus) or UNLIMITED,
            "memory": (
                f"{record.memory.text} ({format_memory(record.memory.bytes)})"
                if record.memory is not None else UNLIMITED
            ),
            "storage": record.storage or "anonymous volume",
        }
        host_config = self.runtime.inspect_limits(record.service_name)
        live = describe_host_config(host_config) if host_config is not None else None
        return {"username": username, "configured": configured, "live": live}

    def ssh_info(self, username: str) -> Optional[Dict[str, Any]]:
        """
        실행 중인 컨테이너의 SSH 접속 정보. 공개된 SSH 포트가 없으면 None.

        Raises:
            ServiceNotFoundError: 레지스트리에 사용자가 없을 때.
        """
        record = self.get_user(username)
        ssh_port = self.runtime.published_port(record.service_name, config.CONTAINER_SSH_PORT)
        if ssh_port is None:
            return None
        return {
            "host": config.SSH_HOST,
            "port": ssh_port,
            "username": username,
            "command": f"ssh -p {ssh_port} {username}@{config.SSH_HOST}",
            "web_port": self.runtime.published_port(record.service_name, config.CONTAINER_WEB_PORT),
        }

    def service_config(self, username: str) -> Dict[str, Any]:
        """사용자의 레지스트리 행과 compose 파일 안의 서비스 블록."""
        record = self._require_service(username)
        document = self._compile(self.record_repo.scan())
        return {"record": record, "service": document["services"][record.service_name]}

    def logs(self, username: str, follow=True):
        record = self._require_service(username)
        self.runtime.logs(record.service_name, follow=follow)

    def shell(self, username: str):
        record = self._require_service(username)
        self.runtime.shell(record.service_name)

    def status(self) -> str:
        self.generate()
        return self.runtime.status()

    def doctor(self, username: Optional[str] = None) -> Dict[str, Any]:
        """
        레지스트리와 compose 파일이 일관된지 확인합니다. 아무것도 수정하지 않습니다.

        Returns:
            레지스트리 원본 줄, 파싱된 사용자, 컴파일된 서비스 목록, (username이 주어지면)
            해당 서비스 존재 여부, 그리고 의심되는 원인(hints)을 담은 dict.
        """
        raw_lines = self.record_repo.raw_lines()
        hints = []
        report: Dict[str, Any] = {
            "registry": str(getattr(self.record_repo, "path", "")),
            "registry_exists": bool(raw_lines),
            "raw_lines": raw_lines,
            "users": [],
            "services": [],
            "hints": hints,
        }
        if not raw_lines:
            hints.append("Registry file is missing or empty; any lifecycle command will create it.")
        else:
            records = list(self.record_repo.scan())
            report["users"] = [r.username for r in records]
            # compose 파일은 쓰지 않고 메모리에서만 컴파일합니다.
            document = self._compile(records, password_factory=lambda: PASSWORD_PLACEHOLDER)
            report["services"] = service_names(document)

            if any(line.endswith('\r') for line in raw_lines):
                hints.append("Registry has Windows (CRLF) line endings; they are stripped on read "
                             "but re-save the file with LF endings to be safe.")
            if any(not r.password for r in records):
                hints.append("Some rows have no password; one will be generated on the next compile.")
            elif not self.compose_file.exists():
                hints.append(f"{self.compose_file} does not exist yet; run 'generate'.")
            elif self.compose_file.read_text() != render_compose(document):
                hints.append(f"{self.compose_file} is out of date with the registry; run 'generate'.")
            for record in records:
                if record.storage and dedicated_storage(record) is None:
                    hints.append(f"User '{record.username}' has an unparseable storage size "
                                 f"'{record.storage}'; an anonymous volume is used instead.")

        if username is not None:
            service = f"{username}-ssh"
            report["user"] = username
            report["service"] = service
            report["found"] = service in report["services"]
            try:
                validate_username(username)
            except InvalidIdentifierError as e:
                hints.append(str(e))
            if not report["found"]:
                hints.extend(self._missing_user_hints(username, raw_lines))
        return report

    def _missing_user_hints(self, username: str, raw_lines: List[str]) -> List[str]:
        hints = []
        rows = [line for line in raw_lines if line.split(',', 1)[0].strip() == username]
        if not rows:
            hints.append(f"User '{username}' is not in the registry; add it with 'add {username} ...'.")
        else:
            hints.append(f"User '{username}' has a registry row that could not be parsed; "
                         f"check the warnings above and the row's ports, cpus and memory values.")
        return hints
