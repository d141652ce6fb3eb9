# src/services/exceptions.py

class SandboxError(Exception):
    """이 패키지에서 발생하는 모든 오류의 기반 클래스"""
    pass

# --- Validation Exceptions ---
class ValidationError(SandboxError):
    """사용자 이름, 포트, CPU/메모리 값 등 입력이 유효하지 않을 때"""
    pass

class InvalidIdentifierError(ValidationError):
    """사용자 이름이 식별자 규칙을 위반했을 때. 위반한 규칙 이름을 rule에 담습니다."""
    def __init__(self, message, rule):
        super().__init__(message)
        self.rule = rule

# --- Not Found Exceptions ---
class NotFoundError(SandboxError):
    """요청한 대상을 찾을 수 없을 때"""
    pass

class ServiceNotFoundError(NotFoundError):
    """레지스트리(따라서 compose 파일)에 해당 사용자의 서비스가 없을 때"""
    def __init__(self, username, service_name):
        super().__init__(
            f"Service '{service_name}' not found in the compiled descriptor. "
            f"Check that user '{username}' exists in the registry (try 'doctor {username}') "
            f"instead of retrying."
        )
        self.username = username
        self.service_name = service_name

# --- Runtime Exceptions ---
class RuntimeCommandError(SandboxError):
    """docker 또는 mount/mkfs 등 외부 명령 실행이 실패했을 때"""
    def __init__(self, message, command=None, stderr=""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr

class RegistryLockError(SandboxError):
    """레지스트리 파일의 잠금을 제한 시간 내에 얻지 못했을 때"""
    pass

# --- Warnings ---
class ProvisioningWarning(UserWarning):
    """스토리지 크기를 해석할 수 없어 전용 스토리지 없이 진행할 때 (로그로만 남김)"""
    pass
