import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from src import config
from src.services.exceptions import RuntimeCommandError

logger = logging.getLogger(__name__)


class DockerComposeRuntime:
    """
    docker / docker compose CLI를 호출하는 동기 클라이언트.

    모든 호출은 실패하면 재시도 없이 RuntimeCommandError를 던지며,
    docker가 출력한 오류 메시지를 그대로 담습니다.
    """

    def __init__(self, compose_file=None, docker_bin=None):
        self.compose_file = Path(compose_file or config.COMPOSE_FILE)
        self.docker_bin = docker_bin or config.DOCKER_BIN

    def _compose(self, *args) -> List[str]:
        return [self.docker_bin, 'compose', '-f', str(self.compose_file), *args]

    def _run(self, command, capture=True, check=True) -> subprocess.CompletedProcess:
        logger.debug("Running: %s", ' '.join(command))
        try:
            if capture:
                result = subprocess.run(command, capture_output=True, text=True)
            else:
                # 로그 스트리밍, 대화형 셸은 터미널을 그대로 넘겨줍니다.
                result = subprocess.run(command)
        except FileNotFoundError:
            raise RuntimeCommandError(
                f"'{self.docker_bin}' command not found. Install Docker with the compose plugin.",
                command=command,
            )
        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip() if capture else ""
            raise RuntimeCommandError(
                f"Command '{' '.join(command)}' failed (exit {result.returncode})"
                + (f": {stderr}" if stderr else "."),
                command=command,
                stderr=stderr,
            )
        return result

    # --- 서비스 수명 주기 ---
    def apply(self, service: str):
        """compose 파일을 적용하여 해당 서비스의 컨테이너를 (시작하지 않고) 생성하거나 갱신합니다."""
        self._run(self._compose('up', '--no-start', service))

    def start(self, service: str):
        self._run(self._compose('up', '-d', service))

    def stop(self, service: str):
        self._run(self._compose('stop', service))

    def restart(self, service: str):
        self._run(self._compose('restart', service))

    def recreate(self, service: str):
        """컨테이너를 버리고 현재 이미지와 compose 파일로 다시 만듭니다 (제한 값 변경 반영용)."""
        self._run(self._compose('up', '-d', '--force-recreate', service))

    def remove(self, container_name: str):
        """컨테이너를 중지하고 삭제합니다. compose 파일에 서비스가 없어도 동작합니다."""
        self._run([self.docker_bin, 'rm', '--force', container_name])

    def container_exists(self, container_name: str) -> bool:
        result = self._run([self.docker_bin, 'container', 'inspect', container_name], check=False)
        return result.returncode == 0

    def remove_volume(self, volume: str):
        self._run([self.docker_bin, 'volume', 'rm', volume])

    def volume_exists(self, volume: str) -> bool:
        result = self._run([self.docker_bin, 'volume', 'inspect', volume], check=False)
        return result.returncode == 0

    # --- 조회 ---
    def container_id(self, service: str) -> Optional[str]:
        """실행 중이거나 중지된 서비스 컨테이너의 ID. 컨테이너가 없으면 None."""
        result = self._run(self._compose('ps', '-a', '-q', service), check=False)
        if result.returncode != 0:
            return None
        container = result.stdout.strip().splitlines()
        return container[0] if container else None

    def _inspect(self, container: str) -> Optional[dict]:
        result = self._run([self.docker_bin, 'inspect', container], check=False)
        if result.returncode != 0:
            return None
        data = json.loads(result.stdout or "[]")
        return data[0] if data else None

    def is_running(self, service: str) -> bool:
        container = self.container_id(service)
        if not container:
            return False
        info = self._inspect(container)
        return bool(info and info.get('State', {}).get('Running'))

    def inspect_limits(self, service: str) -> Optional[dict]:
        """
        실행 중인 컨테이너의 HostConfig에서 CPU/메모리 관련 필드를 가져옵니다.

        Returns:
            NanoCpus, CpuQuota, CpuPeriod, Memory, MemoryReservation 키를 가진 dict.
            컨테이너가 실행 중이 아니면 None.
        """
        container = self.container_id(service)
        if not container:
            return None
        info = self._inspect(container)
        if not info or not info.get('State', {}).get('Running'):
            return None
        host_config = info.get('HostConfig') or {}
        keys = ('NanoCpus', 'CpuQuota', 'CpuPeriod', 'Memory', 'MemoryReservation')
        return {key: host_config.get(key) or 0 for key in keys}

    def published_port(self, container_name: str, private_port: int) -> Optional[int]:
        """`docker port`로 컨테이너 포트가 공개된 호스트 포트를 찾습니다."""
        result = self._run([self.docker_bin, 'port', container_name, str(private_port)], check=False)
        if result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            host_port = line.strip().rsplit(':', 1)[-1]
            if host_port.isdigit():
                return int(host_port)
        return None

    def list_containers(self) -> str:
        result = self._run([
            self.docker_bin, 'ps', '-a', '--filter', 'name=-ssh',
            '--format', 'table {{.Names}}\t{{.Status}}\t{{.Ports}}',
        ])
        return result.stdout

    def status(self) -> str:
        return self._run(self._compose('ps')).stdout

    # --- 대화형 (끝날 때까지 블로킹) ---
    def logs(self, service: str, follow=True):
        args = ['logs']
        if follow:
            args.append('-f')
        self._run(self._compose(*args, service), capture=False)

    def shell(self, container_name: str, command='/bin/bash'):
        self._run([self.docker_bin, 'exec', '-it', container_name, command], capture=False)
