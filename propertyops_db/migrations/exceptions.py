"""
Error taxonomy for schema migrations.

Plan-level errors (InvalidPlan, DependencyCycle) abort a run before anything
touches the database. Step-level errors (StepFailure subclasses) are local to
one step or atomic group and end up as Failed entries in the ExecutionReport.
"""

from typing import Iterable, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""
    pass


class InvalidPlan(MigrationError):
    """Raised when a plan cannot be executed as declared."""
    pass


class DependencyCycle(InvalidPlan):
    """Raised when step dependencies form a cycle."""

    def __init__(self, steps: Iterable[str]):
        self.steps = list(steps)
        super().__init__(f"Dependency cycle between steps: {', '.join(self.steps)}")


class StepFailure(MigrationError):
    """A single step could not be brought to its target state."""

    kind = "StepFailure"

    def __init__(self, message: str, step_name: Optional[str] = None, cause: Optional[BaseException] = None):
        self.step_name = step_name
        self.cause = cause
        super().__init__(message)


class InspectionFailure(StepFailure):
    """The existence check itself failed (connectivity, permissions, ...)."""

    kind = "InspectionFailure"


class MissingPrerequisite(StepFailure):
    """A table the step needs is absent, or a step it depends on failed."""

    kind = "MissingPrerequisite"


class ApplyFailure(StepFailure):
    """The mutating statement failed after a clean guard check."""

    kind = "ApplyFailure"
