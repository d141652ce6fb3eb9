# src/models/teardown.py
from dataclasses import dataclass, field
from typing import List


@dataclass
class StepOutcome:
    """정리 작업 중 한 단계의 결과"""
    name: str
    ok: bool
    detail: str = ""


@dataclass
class TeardownReport:
    """
    사용자 제거 시 수행한 정리 단계들의 결과 모음.

    각 단계는 서로 독립적이며, 한 단계가 실패해도 다음 단계는 계속 진행됩니다.
    """
    steps: List[StepOutcome] = field(default_factory=list)

    def record(self, name, ok, detail=""):
        self.steps.append(StepOutcome(name, ok, detail))

    def extend(self, other: "TeardownReport"):
        self.steps.extend(other.steps)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failures(self) -> List[StepOutcome]:
        return [step for step in self.steps if not step.ok]

    def summary(self) -> str:
        failed = len(self.failures)
        if not failed:
            return f"{len(self.steps)} cleanup step(s) completed."
        names = ", ".join(step.name for step in self.failures)
        return f"{len(self.steps) - failed}/{len(self.steps)} cleanup step(s) completed; failed: {names}."
