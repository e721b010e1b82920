"""
Base class for declarative schema migration steps.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Annotated, FrozenSet, Optional, Set, Tuple
import logging
import re

from pydantic import AfterValidator, BaseModel, ConfigDict, field_validator
from sqlalchemy import Connection
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import ApplyFailure, MissingPrerequisite
from .inspector import SchemaInspector

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
REFERENCES_RE = re.compile(r'\bREFERENCES\s+"?([A-Za-z_][A-Za-z0-9_]*)"?', re.IGNORECASE)


class Outcome(str, Enum):
    APPLIED = "Applied"
    SKIPPED = "Skipped"
    FAILED = "Failed"


def check_identifier(value: str) -> str:
    if not IDENTIFIER_RE.match(value):
        raise ValueError(f"'{value}' is not a plain SQL identifier")
    return value


Identifier = Annotated[str, AfterValidator(check_identifier)]


def referenced_tables_in(sql: str) -> Set[str]:
    """Tables named by REFERENCES clauses in a DDL fragment."""
    return {match.group(1) for match in REFERENCES_RE.finditer(sql)}


class BaseMigration(BaseModel, ABC):
    """
    One idempotent unit of schema change.

    Subclasses describe the desired object and how to tell whether it already
    exists; `run` enforces the check-then-apply contract for all of them.
    Instances are frozen: the engine never mutates a caller's step.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: Optional[str] = None
    depends_on: FrozenSet[str] = frozenset()

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("step name must not be blank")
        return value

    @property
    @abstractmethod
    def target(self) -> str:
        """Human readable name of the object this step materializes."""

    @property
    @abstractmethod
    def definition(self) -> str:
        """The DDL/DML that realizes the change when it is absent."""

    def required_tables(self) -> Set[str]:
        """Tables that must exist before the existence guard can even run."""
        return set()

    def referenced_tables(self) -> Set[str]:
        """Tables referenced by foreign keys in the definition."""
        return set()

    @abstractmethod
    def is_present(self, inspector: SchemaInspector) -> bool:
        """Existence guard: True when the target is already materialized."""

    @abstractmethod
    def up(self, connection: Connection) -> bool:
        """Apply the change. Returns False when the store reported nothing changed."""

    @property
    def applied_detail(self) -> str:
        return f"{self.target} created"

    def skip_detail(self, inspector: SchemaInspector) -> str:
        return "already present"

    def _require_tables(self, inspector: SchemaInspector, tables: Set[str], reason: str) -> None:
        for table_name in sorted(tables):
            if not inspector.table_exists(table_name):
                raise MissingPrerequisite(
                    f"{reason} table '{table_name}' does not exist",
                    step_name=self.name
                )

    def run(self, connection: Connection, schema: Optional[str] = None) -> Tuple[Outcome, str]:
        """
        Bring the target to its desired state on the given connection.

        Raises a StepFailure subclass on failure; the caller owns the
        transaction and decides what to roll back.
        """
        inspector = SchemaInspector(connection, schema=schema, step_name=self.name)

        self._require_tables(inspector, self.required_tables(), "target")

        if self.is_present(inspector):
            detail = self.skip_detail(inspector)
            logger.debug(f"{self}: {detail}")
            return Outcome.SKIPPED, detail

        self._require_tables(inspector, self.referenced_tables() - self.required_tables(), "referenced")

        try:
            changed = self.up(connection)
        except SQLAlchemyError as exc:
            raise ApplyFailure(f"{self.kind} {self.target} failed: {exc}", step_name=self.name, cause=exc) from exc

        if not changed:
            return Outcome.SKIPPED, "already present (conflict on insert)"
        return Outcome.APPLIED, self.applied_detail

    def __str__(self):
        return f"Step {self.name} ({self.kind} {self.target})"
