"""
Read-only view of the live catalog.

Every call builds a new SQLAlchemy Inspector on the caller's connection.
Inspectors memoize reflection results, and a step earlier in the same run (or
the same transaction) may just have created the object being asked about.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy import Connection, and_, column, inspect, literal, select, table
from sqlalchemy.engine import Inspector
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import InspectionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaSnapshot:
    """Tables present in the catalog, each with its column name -> declared type."""

    tables: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def has_column(self, table_name: str, column_name: str) -> bool:
        return column_name in self.tables.get(table_name, {})


class SchemaInspector:
    """Answers "does object X already exist?" against the live database."""

    def __init__(self, connection: Connection, schema: Optional[str] = None, step_name: Optional[str] = None):
        self.connection = connection
        self.schema = schema
        self.step_name = step_name

    def _fail(self, what: str, exc: SQLAlchemyError) -> InspectionFailure:
        logger.error(f"Inspection failed while checking {what}: {exc}")
        return InspectionFailure(f"Could not inspect {what}: {exc}", step_name=self.step_name, cause=exc)

    def _inspector(self) -> Inspector:
        try:
            return inspect(self.connection)
        except SQLAlchemyError as exc:
            raise self._fail("catalog", exc) from exc

    def table_exists(self, name: str) -> bool:
        try:
            return self._inspector().has_table(name, schema=self.schema)
        except SQLAlchemyError as exc:
            raise self._fail(f"table '{name}'", exc) from exc

    def _columns(self, table_name: str) -> Optional[Dict[str, str]]:
        """Column name -> rendered type, or None when the table is absent."""
        try:
            inspector = self._inspector()
            if not inspector.has_table(table_name, schema=self.schema):
                return None
            columns = inspector.get_columns(table_name, schema=self.schema)
        except SQLAlchemyError as exc:
            raise self._fail(f"columns of '{table_name}'", exc) from exc
        return {col["name"]: self._render_type(col["type"]) for col in columns}

    def _render_type(self, column_type: Any) -> str:
        try:
            return column_type.compile(dialect=self.connection.dialect)
        except Exception:
            # Reflected types the dialect cannot compile (NullType and friends)
            return str(column_type.__class__.__name__).upper()

    def column_exists(self, table_name: str, column_name: str) -> bool:
        columns = self._columns(table_name)
        return columns is not None and column_name in columns

    def column_type(self, table_name: str, column_name: str) -> Optional[str]:
        columns = self._columns(table_name)
        if columns is None:
            return None
        return columns.get(column_name)

    def row_exists(self, table_name: str, predicate: Mapping[str, Any]) -> bool:
        """True when at least one row matches every column == value pair of the predicate."""
        if not predicate:
            raise ValueError("row_exists needs at least one predicate column")
        target = table(table_name, *[column(name) for name in predicate], schema=self.schema)
        query = (
            select(literal(1))
            .select_from(target)
            .where(and_(*[target.c[name] == value for name, value in predicate.items()]))
            .limit(1)
        )
        try:
            return self.connection.execute(query).first() is not None
        except SQLAlchemyError as exc:
            raise self._fail(f"rows of '{table_name}'", exc) from exc

    def snapshot(self) -> SchemaSnapshot:
        try:
            names = self._inspector().get_table_names(schema=self.schema)
        except SQLAlchemyError as exc:
            raise self._fail("table list", exc) from exc
        tables = {}
        for name in sorted(names):
            tables[name] = self._columns(name) or {}
        return SchemaSnapshot(tables=tables)
