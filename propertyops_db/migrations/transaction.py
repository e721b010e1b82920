"""
Transactional scopes for execution units.

Each unit (a step, or an atomic group) runs inside one `engine.begin()` block.
Anything that goes wrong inside rolls the whole unit back; units that already
committed stay committed.
"""

from typing import Dict, List, Optional, Set, Tuple
import logging

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from .base_migration import Outcome
from .exceptions import ApplyFailure, InspectionFailure, MissingPrerequisite, StepFailure
from .plan import Step
from .report import ExecutionReport
from .resolver import ExecutionUnit

logger = logging.getLogger(__name__)


class TransactionCoordinator:
    """Runs execution units one at a time and records their outcomes."""

    def __init__(self, engine: Engine, report: ExecutionReport, schema: Optional[str] = None):
        self.engine = engine
        self.report = report
        self.schema = schema
        self.failed: Set[str] = set()

    def _fail(self, step_name: str, detail: str, error: Optional[StepFailure] = None) -> None:
        self.report.record(step_name, Outcome.FAILED, detail, error)
        self.failed.add(step_name)

    def _blocking_dependency(self, unit: ExecutionUnit, deps: Dict[str, Set[str]]) -> Optional[Tuple[str, str]]:
        for step in unit.steps:
            failed_deps = sorted(deps.get(step.name, set()) & self.failed)
            if failed_deps:
                return step.name, failed_deps[0]
        return None

    def execute(self, unit: ExecutionUnit, deps: Dict[str, Set[str]]) -> None:
        blocked = self._blocking_dependency(unit, deps)
        if blocked:
            step_name, dependency = blocked
            # Cascade: nothing is attempted, so there is nothing to roll back
            error = MissingPrerequisite(f"dependency '{dependency}' failed", step_name=step_name)
            for step in unit.steps:
                if step.name == step_name:
                    self._fail(step.name, str(error), error)
                else:
                    self._fail(step.name, f"not attempted: group {unit.name} blocked by {step_name}")
            return

        completed: List[Tuple[Step, Outcome, str]] = []
        current: Optional[Step] = None
        try:
            with self.engine.begin() as connection:
                for step in unit.steps:
                    current = step
                    outcome, detail = step.run(connection, schema=self.schema)
                    completed.append((step, outcome, detail))
                current = None
        except StepFailure as exc:
            self._record_failure(unit, completed, current, exc)
            return
        except SQLAlchemyError as exc:
            if current is not None:
                failure = ApplyFailure(f"Database error: {exc}", step_name=current.name, cause=exc)
            elif not completed:
                current = unit.steps[0]
                failure = InspectionFailure(f"Could not open a transaction: {exc}", step_name=current.name, cause=exc)
            else:
                current, _, _ = completed.pop()
                failure = ApplyFailure(f"Commit failed: {exc}", step_name=current.name, cause=exc)
            self._record_failure(unit, completed, current, failure)
            return

        for step, outcome, detail in completed:
            self.report.record(step.name, outcome, detail)

    def _record_failure(self, unit: ExecutionUnit, completed: List[Tuple[Step, Outcome, str]],
                        failing: Step, error: StepFailure) -> None:
        logger.error(f"Rolling back {'group ' + unit.name if unit.is_group else unit.name}: {error}")
        done = set()
        for step, outcome, detail in completed:
            done.add(step.name)
            if outcome == Outcome.APPLIED:
                self._fail(step.name, f"rolled back with group {unit.name}", ApplyFailure(str(error), step_name=step.name))
            else:
                # Nothing was changed by this step; its target still exists
                self.report.record(step.name, outcome, detail)

        self._fail(failing.name, str(error), error)
        done.add(failing.name)

        for step in unit.steps:
            if step.name not in done:
                self._fail(step.name, f"not attempted: group {unit.name} rolled back")
