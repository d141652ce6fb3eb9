import logging
import os
import subprocess
import warnings
from pathlib import Path
from typing import Optional

from src import config
from src.models import TeardownReport
from src.services.exceptions import ProvisioningWarning, RuntimeCommandError
from src.utils.identifier import validate_username
from src.utils.quantities import parse_byte_size

logger = logging.getLogger(__name__)

# e2fsck 종료 코드 4 이상은 복구되지 않은 오류입니다 (1, 2는 "수정함").
E2FSCK_MAX_OK_CODE = 3


def image_path_for(storage_dir, username) -> Path:
    return Path(storage_dir) / "images" / f"{username}.img"


def mount_path_for(storage_dir, username) -> Path:
    return Path(storage_dir) / "mnt" / username


class StorageService:
    def __init__(self, storage_dir=None, use_sudo=None):
        """
        StorageService를 초기화합니다.

        사용자별 전용 스토리지는 루프백 장치로 마운트되는 ext4 이미지 파일이며,
        컨테이너의 /home에 바인드 마운트됩니다.

        Args:
            storage_dir: 이미지 파일(images/)과 마운트 지점(mnt/)의 기준 디렉터리.
            use_sudo: mount/mkfs 등을 sudo로 실행할지 여부. 기본값은 config.USE_SUDO.
        """
        self.storage_dir = Path(storage_dir or config.STORAGE_DIR)
        self.use_sudo = config.USE_SUDO if use_sudo is None else use_sudo

    def image_path(self, username: str) -> Path:
        return image_path_for(self.storage_dir, username)

    def mount_path(self, username: str) -> Path:
        return mount_path_for(self.storage_dir, username)

    def _run(self, command, ok_codes=(0,)):
        if self.use_sudo:
            command = ['sudo'] + command
        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except FileNotFoundError:
            raise RuntimeCommandError(f"Command not found: {command[0]}. Install it and retry.", command=command)
        if result.returncode not in ok_codes:
            raise RuntimeCommandError(
                f"Command '{' '.join(command)}' failed (exit {result.returncode}): {result.stderr.strip()}",
                command=command,
                stderr=result.stderr,
            )
        return result

    def is_mounted(self, username: str) -> bool:
        return os.path.ismount(self.mount_path(username))

    def current_size(self, username: str) -> Optional[int]:
        image = self.image_path(username)
        if not image.exists():
            return None
        return os.path.getsize(image)

    def needs_growth(self, username: str, requested_size: str) -> bool:
        """이미지가 이미 있고 요청한 크기가 더 커서 provision이 이미지를 늘리게 되는지 여부."""
        if not requested_size:
            return False
        try:
            size = parse_byte_size(requested_size)
        except ValueError:
            return False
        current = self.current_size(username)
        return current is not None and size.bytes > current

    def provision(self, username: str, requested_size: str) -> Optional[Path]:
        """
        사용자의 전용 스토리지를 요청한 크기로 만들거나 늘리고 마운트합니다.

        여러 번 호출해도 안전합니다. 이미 요청한 크기 이상이고 마운트되어 있으면 아무것도 하지 않습니다.
        크기는 늘리기만 하며, 더 작은 크기를 요청하면 무시합니다.

        Args:
            username: 대상 사용자 이름.
            requested_size: '10G' 같은 크기 문자열. 비어 있으면 아무 작업도 하지 않습니다.

        Returns:
            마운트 경로. 전용 스토리지를 쓰지 않게 된 경우 None.

        Raises:
            RuntimeCommandError: truncate, mkfs, e2fsck, resize2fs, mount 중 하나가 실패했을 때.
        """
        validate_username(username)
        if not requested_size:
            return None
        try:
            size = parse_byte_size(requested_size)
        except ValueError as e:
            warnings.warn(
                f"User '{username}': {e} Skipping dedicated storage; an anonymous volume is used instead.",
                ProvisioningWarning,
            )
            return None

        image = self.image_path(username)
        mount = self.mount_path(username)
        self._run(['mkdir', '-p', str(image.parent)])

        current = self.current_size(username)
        if current is None:
            self._create_image(image, size.bytes)
        elif size.bytes > current:
            self._grow_image(username, image, size.bytes)
        elif size.bytes < current:
            logger.warning(
                "Storage for '%s' is %d bytes; ignoring request to shrink to %s.",
                username, current, size.text,
            )

        self._ensure_mounted(username, image, mount)
        return mount

    def _create_image(self, image: Path, size_bytes: int):
        logger.info("Creating %d-byte %s image at %s", size_bytes, config.FILESYSTEM_TYPE, image)
        self._run(['truncate', '-s', str(size_bytes), str(image)])
        self._run([f'mkfs.{config.FILESYSTEM_TYPE}', '-F', '-q', str(image)])

    def _grow_image(self, username: str, image: Path, size_bytes: int):
        # e2fsck는 마운트되지 않은 파일시스템에서만 실행해야 하므로 먼저 내립니다.
        if self.is_mounted(username):
            self._run(['umount', str(self.mount_path(username))])
        logger.info("Growing storage image %s to %d bytes", image, size_bytes)
        self._run(['truncate', '-s', str(size_bytes), str(image)])
        self._run(['e2fsck', '-f', '-y', str(image)], ok_codes=range(E2FSCK_MAX_OK_CODE + 1))
        self._run(['resize2fs', str(image)])

    def _ensure_mounted(self, username: str, image: Path, mount: Path):
        self._run(['mkdir', '-p', str(mount)])
        if self.is_mounted(username):
            return
        logger.info("Mounting %s at %s", image, mount)
        self._run(['mount', '-o', 'loop', str(image), str(mount)])

    def teardown(self, username: str) -> TeardownReport:
        """
        사용자의 전용 스토리지를 마운트 해제하고 마운트 디렉터리와 이미지 파일을 삭제합니다.

        각 단계는 독립적으로 시도되며, 실패해도 예외를 던지지 않고 결과 보고서에 기록됩니다.
        전용 스토리지가 없던 사용자라면 빈 보고서를 반환합니다.
        """
        validate_username(username)
        report = TeardownReport()
        image = self.image_path(username)
        mount = self.mount_path(username)

        steps = []
        if self.is_mounted(username):
            # 컨테이너가 아직 잡고 있을 수 있으므로 lazy unmount
            steps.append(('unmount storage', ['umount', '-l', str(mount)]))
        if mount.exists():
            steps.append(('remove mount directory', ['rmdir', str(mount)]))
        if image.exists():
            steps.append(('delete storage image', ['rm', '-f', str(image)]))

        for name, command in steps:
            try:
                self._run(command)
                report.record(name, True)
            except RuntimeCommandError as e:
                logger.warning("Teardown step '%s' for '%s' failed: %s", name, username, e)
                report.record(name, False, str(e))
        return report
