from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

from .base_migration import Outcome
from .exceptions import MigrationError, StepFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    step_name: str
    outcome: Outcome
    detail: str
    error_kind: Optional[str] = None

    def format_line(self) -> str:
        marker = {Outcome.APPLIED: "✅", Outcome.SKIPPED: "⏭️", Outcome.FAILED: "❌"}[self.outcome]
        line = f"{marker} {self.outcome.value:<7} {self.step_name}: {self.detail}"
        if self.error_kind:
            line += f" [{self.error_kind}]"
        return line


class ExecutionReport:
    """Ordered record of every step's outcome for one run."""

    def __init__(self):
        self._results: List[StepResult] = []
        self._closed = False

    def record(self, step_name: str, outcome: Outcome, detail: str,
               error: Optional[StepFailure] = None) -> StepResult:
        if self._closed:
            raise MigrationError("Execution report is closed; the run has already ended")
        result = StepResult(step_name, outcome, detail, error.kind if error is not None else None)
        self._results.append(result)

        if outcome == Outcome.FAILED:
            logger.error(result.format_line())
        else:
            logger.info(result.format_line())
        return result

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def results(self) -> Tuple[StepResult, ...]:
        return tuple(self._results)

    def outcome_of(self, step_name: str) -> Optional[Outcome]:
        for result in self._results:
            if result.step_name == step_name:
                return result.outcome
        return None

    def failed_steps(self) -> List[str]:
        return [r.step_name for r in self._results if r.outcome == Outcome.FAILED]

    def summary(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for result in self._results:
            counts[result.outcome.value] += 1
        return counts

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps()

    def __len__(self):
        return len(self._results)

    def __iter__(self):
        return iter(self._results)
