"""Minimal saga runner for updates spanning the auth provider and the database.

Each step may register a compensation. When a step fails, the compensations
of the steps that already succeeded run in reverse order, once, and their
outcomes are recorded on the returned SagaOutcome.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..results import Failure, Ok, Result

logger = logging.getLogger(__name__)


@dataclass
class SagaStep:
    name: str
    action: Callable[[], Result]
    compensation: Callable[[], Result] | None = None


@dataclass
class CompensationRecord:
    step: str
    succeeded: bool
    detail: str = ""


@dataclass
class SagaOutcome:
    result: Result
    failed_step: str | None = None
    compensations: list[CompensationRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return isinstance(self.result, Ok)


class Saga:
    def __init__(self, name: str) -> None:
        self.name = name
        self._steps: list[SagaStep] = []

    def step(
        self,
        name: str,
        action: Callable[[], Result],
        compensation: Callable[[], Result] | None = None,
    ) -> "Saga":
        self._steps.append(SagaStep(name, action, compensation))
        return self

    def run(self) -> SagaOutcome:
        completed: list[SagaStep] = []
        result: Result = Ok()
        for step in self._steps:
            result = step.action()
            if isinstance(result, Failure):
                logger.warning("Saga %s failed at %s: %s", self.name, step.name, result.message)
                return SagaOutcome(result, step.name, self._compensate(completed))
            completed.append(step)
        return SagaOutcome(result)

    def _compensate(self, completed: list[SagaStep]) -> list[CompensationRecord]:
        records = []
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                outcome = step.compensation()
            except Exception as e:
                logger.exception("Saga %s: compensation for %s raised", self.name, step.name)
                records.append(CompensationRecord(step.name, False, str(e)))
                continue
            if isinstance(outcome, Failure):
                logger.error("Saga %s: compensation for %s failed: %s", self.name, step.name, outcome.message)
                records.append(CompensationRecord(step.name, False, outcome.message))
            else:
                logger.info("Saga %s: compensated %s", self.name, step.name)
                records.append(CompensationRecord(step.name, True))
        return records
