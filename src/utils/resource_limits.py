# src/utils/resource_limits.py
"""
CPU/메모리 제한 값 변환.

정방향: 사람이 입력한 값(1.5, 512m) -> compose/docker가 이해하는 제한 값.
역방향: docker inspect가 보고하는 HostConfig 값 -> 사람이 읽을 수 있는 값.

값이 없으면(None) '제한 없음'이며 제한 항목 자체를 만들지 않습니다.
명시적인 0은 None과 다르게 취급하여 그대로 내보냅니다.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from src.utils.quantities import ByteSize

UNLIMITED = "unlimited"
NANO_CPUS_PER_CPU = 10 ** 9
_MEMORY_UNITS = ("bytes", "KiB", "MiB", "GiB", "TiB")


def cpu_limit(cpus: Optional[Decimal]) -> Optional[str]:
    """compose의 deploy.resources.limits.cpus 값. 설정하지 않았으면 None."""
    if cpus is None:
        return None
    return str(cpus.normalize()) if cpus != cpus.to_integral_value() else str(int(cpus))


def memory_limit(memory: Optional[ByteSize]) -> Optional[int]:
    """compose의 메모리 제한 값(바이트). 설정하지 않았으면 None."""
    if memory is None:
        return None
    return memory.bytes


def compose_resources(cpus: Optional[Decimal], memory: Optional[ByteSize]) -> dict:
    """
    서비스의 deploy.resources 블록을 만듭니다.

    메모리 예약(reservation)은 제한 값과 같게 설정합니다. 두 값이 모두 없으면 빈 dict를 반환합니다.
    """
    limits = {}
    reservations = {}
    cpu_value = cpu_limit(cpus)
    if cpu_value is not None:
        limits["cpus"] = cpu_value
    memory_value = memory_limit(memory)
    if memory_value is not None:
        limits["memory"] = memory_value
        reservations["memory"] = memory_value
    resources = {}
    if limits:
        resources["limits"] = limits
    if reservations:
        resources["reservations"] = reservations
    return resources


def format_cpus(nano_cpus=0, cpu_quota=0, cpu_period=0) -> str:
    """
    docker가 보고한 CPU 할당량을 코어 수(소수점 3자리)로 변환합니다.

    NanoCpus를 우선 사용하고, 없으면 CpuQuota/CpuPeriod 비율을 사용합니다.
    어느 쪽도 양수가 아니면 'unlimited'입니다.
    """
    nano_cpus = nano_cpus or 0
    cpu_quota = cpu_quota or 0
    cpu_period = cpu_period or 0
    if nano_cpus > 0:
        cores = Decimal(nano_cpus) / NANO_CPUS_PER_CPU
    elif cpu_quota > 0 and cpu_period > 0:
        cores = Decimal(cpu_quota) / Decimal(cpu_period)
    else:
        return UNLIMITED
    return str(cores.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP))


def format_memory(num_bytes) -> str:
    """
    바이트 수를 1 이상이 되는 가장 큰 단위(bytes/KiB/MiB/GiB/TiB)로, 소수점 2자리로 표시합니다.
    0 이하이면 'unlimited'입니다.
    """
    if not num_bytes or num_bytes <= 0:
        return UNLIMITED
    value = Decimal(num_bytes)
    unit = _MEMORY_UNITS[0]
    for candidate in _MEMORY_UNITS[1:]:
        if value < 1024:
            break
        value /= 1024
        unit = candidate
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)} {unit}"


def describe_host_config(host_config: dict) -> dict:
    """docker inspect의 HostConfig에서 CPU/메모리 제한을 사람이 읽을 수 있는 형태로 뽑아냅니다."""
    return {
        "cpus": format_cpus(
            host_config.get("NanoCpus"),
            host_config.get("CpuQuota"),
            host_config.get("CpuPeriod"),
        ),
        "memory": format_memory(host_config.get("Memory")),
    }
