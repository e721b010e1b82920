"""
Idempotent, dependency-aware schema migrations for the operations database.
"""

from .base_migration import BaseMigration, Outcome
from .exceptions import (
    ApplyFailure,
    DependencyCycle,
    InspectionFailure,
    InvalidPlan,
    MigrationError,
    MissingPrerequisite,
    StepFailure,
)
from .inspector import SchemaInspector, SchemaSnapshot
from .migration_runner import MigrationRunner, StepStatus, run_plan
from .plan import AtomicGroup, MigrationPlan, build_plan, load_plan
from .report import ExecutionReport, StepResult
from .resolver import DependencyResolver, ExecutionUnit
from .steps import AddColumn, CreateTable, SeedRow
from .transaction import TransactionCoordinator

__all__ = [
    'AddColumn', 'ApplyFailure', 'AtomicGroup', 'BaseMigration', 'CreateTable',
    'DependencyCycle', 'DependencyResolver', 'ExecutionReport', 'ExecutionUnit',
    'InspectionFailure', 'InvalidPlan', 'MigrationError', 'MigrationPlan',
    'MigrationRunner', 'MissingPrerequisite', 'Outcome', 'SchemaInspector',
    'SchemaSnapshot', 'SeedRow', 'StepFailure', 'StepResult', 'StepStatus',
    'TransactionCoordinator', 'build_plan', 'load_plan', 'run_plan',
]
