# src/utils/compose_generator.py
import warnings
from typing import Iterable, List

import yaml

from src import config
from src.models import UserRecord
from src.services.exceptions import ProvisioningWarning
from src.services.storage_service import mount_path_for
from src.utils.passwords import generate_password
from src.utils.resource_limits import compose_resources

HEADER = (
    "# This file is generated from the user registry. Do not edit it by hand;\n"
    "# run 'sshbox generate' (or any lifecycle command) to rebuild it.\n"
)

HEALTHCHECK = {
    "test": ["CMD", "pgrep", "-x", config.SSH_DAEMON_PROCESS],
    "interval": "30s",
    "timeout": "5s",
    "retries": 3,
}


def dedicated_storage(record: UserRecord):
    """
    사용자가 전용 파일시스템을 쓰는지 판단하여 크기를 반환합니다.

    storage 값을 해석할 수 없으면 ProvisioningWarning을 남기고 None(익명 볼륨 사용)을 반환합니다.
    """
    try:
        return record.storage_size()
    except ValueError as e:
        warnings.warn(
            f"User '{record.username}': {e} Falling back to an anonymous volume.",
            ProvisioningWarning,
        )
        return None


def _service_block(record, use_dedicated_storage, image, network_name, shared_dir, storage_dir, password_factory):
    password = record.password or password_factory()
    if use_dedicated_storage:
        home_volume = f"{mount_path_for(storage_dir, record.username)}:{config.CONTAINER_HOME}"
    else:
        home_volume = f"{record.volume_name}:{config.CONTAINER_HOME}"

    service = {
        "image": image,
        "container_name": record.service_name,
        "hostname": record.hostname,
        "restart": "unless-stopped",
        "environment": {config.USERS_ENV_KEY: f"{record.username}:{password}"},
        "volumes": [
            home_volume,
            f"{shared_dir}:{config.CONTAINER_SHARED}:ro",
        ],
        "healthcheck": {**HEALTHCHECK, "test": list(HEALTHCHECK["test"])},
        "networks": [network_name],
    }

    # 포트 0은 "공개하지 않음"
    ports = []
    if record.ssh_port:
        ports.append(f"{record.ssh_port}:{config.CONTAINER_SSH_PORT}")
    if record.web_port:
        ports.append(f"{record.web_port}:{config.CONTAINER_WEB_PORT}")
    if ports:
        service["ports"] = ports

    resources = compose_resources(record.cpus, record.memory)
    if resources:
        service["deploy"] = {"resources": resources}
    return service


def generate_compose(
    records: Iterable[UserRecord],
    image=None,
    project_name=None,
    network_name=None,
    shared_dir=None,
    storage_dir=None,
    password_factory=generate_password,
) -> dict:
    """
    레지스트리 전체 스냅샷으로부터 docker compose 문서를 만듭니다.

    사용자마다 <username>-ssh 서비스 하나를 만들고, 전용 스토리지를 쓰지 않는 사용자에게는
    이름 있는 볼륨(<username>-data)을 선언하며, 모든 서비스가 하나의 bridge 네트워크를 공유합니다.
    같은 입력에 대해서는 항상 같은 문서를 반환합니다.

    Args:
        records: 레지스트리의 UserRecord 목록.
        image: 사용할 컨테이너 이미지. 기본값은 config.IMAGE.
        project_name: compose 프로젝트 이름.
        network_name: 공유 bridge 네트워크 이름.
        shared_dir: 모든 컨테이너에 읽기 전용으로 마운트할 호스트 디렉터리.
        storage_dir: 전용 스토리지의 이미지/마운트 디렉터리 기준 경로.
        password_factory: 비밀번호가 비어 있는 행에 사용할 비밀번호 생성 함수.

    Returns:
        yaml로 직렬화할 수 있는 dict.
    """
    image = image or config.IMAGE
    project_name = project_name or config.PROJECT_NAME
    network_name = network_name or config.NETWORK_NAME
    shared_dir = shared_dir or config.SHARED_DIR
    storage_dir = storage_dir or config.STORAGE_DIR

    services = {}
    volumes = {}
    for record in records:
        use_dedicated_storage = dedicated_storage(record) is not None
        services[record.service_name] = _service_block(
            record, use_dedicated_storage, image, network_name, shared_dir, storage_dir, password_factory
        )
        if not use_dedicated_storage:
            volumes[record.volume_name] = {"name": record.volume_name, "driver": "local"}
        else:
            volumes.pop(record.volume_name, None)

    document = {"name": project_name, "services": services}
    if volumes:
        document["volumes"] = volumes
    document["networks"] = {network_name: {"name": network_name, "driver": "bridge"}}
    return document


def render_compose(document: dict) -> str:
    """compose 문서를 YAML 텍스트로 변환합니다 (키 순서 유지)."""
    body = yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
    return HEADER + body


def service_names(document: dict) -> List[str]:
    return list(document.get("services", {}))
