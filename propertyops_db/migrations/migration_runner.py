"""
Migration runner: resolves a plan and executes it against one database.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy import Engine

from ..database import create_db_engine
from .exceptions import StepFailure
from .inspector import SchemaInspector, SchemaSnapshot
from .plan import MigrationPlan, Step
from .report import ExecutionReport
from .resolver import DependencyResolver, ExecutionUnit
from .steps import CreateTable
from .transaction import TransactionCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepStatus:
    """Dry-run verdict for one step: 'present', 'pending' or 'blocked'."""

    step_name: str
    state: str
    detail: str


class MigrationRunner:
    """
    Executes migration plans.

    The runner either borrows an engine from the caller or builds one from
    `database_url` for the duration of a single call, disposing of it on
    every exit path.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None,
                 schema: Optional[str] = None):
        if database_url and engine is not None:
            raise ValueError("Pass either database_url or engine, not both")
        self.database_url = database_url
        self.engine = engine
        self.schema = schema
        self.resolver = DependencyResolver()

    def _acquire(self) -> Engine:
        if self.engine is not None:
            return self.engine
        return create_db_engine(self.database_url)

    def _release(self, engine: Engine) -> None:
        if engine is not self.engine:
            engine.dispose()

    def resolve(self, plan: MigrationPlan) -> List[ExecutionUnit]:
        return self.resolver.resolve(plan)

    def run(self, plan: MigrationPlan) -> ExecutionReport:
        """
        Apply every step of the plan that is not already in place.

        Raises InvalidPlan / DependencyCycle before touching the database when
        the plan itself is broken. Per-step failures never raise; they are
        recorded in the returned report.
        """
        units = self.resolve(plan)
        deps = self.resolver.step_dependencies(plan)
        report = ExecutionReport()

        logger.info(f"Running {len(plan.steps)} steps in {len(units)} transactional scopes")
        engine = self._acquire()
        try:
            coordinator = TransactionCoordinator(engine, report, schema=self.schema)
            for unit in units:
                coordinator.execute(unit, deps)
        finally:
            report.close()
            self._release(engine)

        summary = report.summary()
        logger.info(
            f"Run finished: {summary['Applied']} applied, {summary['Skipped']} skipped, {summary['Failed']} failed"
        )
        return report

    def status(self, plan: MigrationPlan) -> List[StepStatus]:
        """
        Dry run: report which steps would apply, without changing anything.

        A step is 'blocked' when a table it needs is absent and no earlier
        step of the plan would create it.
        """
        units = self.resolve(plan)
        planned_tables = set()
        statuses = []

        engine = self._acquire()
        try:
            with engine.connect() as connection:
                for unit in units:
                    for step in unit.steps:
                        inspector = SchemaInspector(connection, schema=self.schema, step_name=step.name)
                        try:
                            status = self._preview(step, inspector, planned_tables)
                        except StepFailure as exc:
                            status = StepStatus(step.name, "blocked", str(exc))
                        statuses.append(status)
                        if isinstance(step, CreateTable):
                            planned_tables.add(step.table)
                connection.rollback()
        finally:
            self._release(engine)
        return statuses

    def _preview(self, step: Step, inspector: SchemaInspector, planned_tables: set) -> StepStatus:
        missing = [t for t in sorted(step.required_tables()) if not inspector.table_exists(t)]
        unplanned = [t for t in missing if t not in planned_tables]
        if unplanned:
            return StepStatus(step.name, "blocked", f"missing table(s): {', '.join(unplanned)}")

        if not missing and step.is_present(inspector):
            return StepStatus(step.name, "present", step.skip_detail(inspector))

        references = step.referenced_tables() - step.required_tables()
        unplanned = [t for t in sorted(references) if t not in planned_tables and not inspector.table_exists(t)]
        if unplanned:
            return StepStatus(step.name, "blocked", f"missing referenced table(s): {', '.join(unplanned)}")
        return StepStatus(step.name, "pending", f"would apply: {step.definition.splitlines()[0]}")

    def snapshot(self) -> SchemaSnapshot:
        engine = self._acquire()
        try:
            with engine.connect() as connection:
                return SchemaInspector(connection, schema=self.schema).snapshot()
        finally:
            self._release(engine)


def run_plan(plan: MigrationPlan, database_url: Optional[str] = None) -> ExecutionReport:
    """Convenience wrapper: run a plan against DATABASE_URL (or the given URL)."""
    return MigrationRunner(database_url=database_url).run(plan)
