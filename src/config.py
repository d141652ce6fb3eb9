# src/config.py
import os
from pathlib import Path

# 모든 경로는 프로젝트 루트를 기준으로 하며, 환경 변수로 덮어쓸 수 있습니다.
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_path(name, default):
    value = os.environ.get(name)
    return Path(value).expanduser() if value else default


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


REGISTRY_PATH = _env_path("SSHBOX_REGISTRY", PROJECT_ROOT / "users.csv")
COMPOSE_FILE = _env_path("SSHBOX_COMPOSE_FILE", PROJECT_ROOT / "docker-compose.yml")
STORAGE_DIR = _env_path("SSHBOX_STORAGE_DIR", PROJECT_ROOT / "storage")
SHARED_DIR = _env_path("SSHBOX_SHARED_DIR", PROJECT_ROOT / "shared")

IMAGE = os.environ.get("SSHBOX_IMAGE", "ssh-workspace:latest")
PROJECT_NAME = os.environ.get("SSHBOX_PROJECT", "ssh-sandboxes")
NETWORK_NAME = os.environ.get("SSHBOX_NETWORK", "ssh-net")
DOCKER_BIN = os.environ.get("SSHBOX_DOCKER", "docker")
SSH_HOST = os.environ.get("SSHBOX_SSH_HOST", "localhost")
LOG_LEVEL = os.environ.get("SSHBOX_LOG_LEVEL", "INFO").upper()

# root가 아니면 mount/mkfs 등은 sudo를 거쳐 실행합니다.
USE_SUDO = _env_bool("SSHBOX_USE_SUDO", os.geteuid() != 0)

# 컨테이너 내부 규약 (이미지의 부트스트랩 스크립트와 맞춰야 함)
CONTAINER_SSH_PORT = 22
CONTAINER_WEB_PORT = 8000
CONTAINER_HOME = "/home"
CONTAINER_SHARED = "/shared"
USERS_ENV_KEY = "USERS"
SSH_DAEMON_PROCESS = "sshd"
FILESYSTEM_TYPE = "ext4"

REGISTRY_HEADER = "user,ssh_port,web_port,password,cpus,memory,storage"
REGISTRY_LOCK_TIMEOUT = 10.0
