"""
Built-in step kinds: CreateTable, AddColumn and SeedRow.
"""

from typing import Any, Dict, List, Literal, Optional, Set
import json
import logging

from pydantic import field_validator, model_validator
from sqlalchemy import Connection, and_, cast, column, insert, inspect, literal, null, select, table, text
from sqlalchemy.dialects import postgresql, sqlite

from .base_migration import BaseMigration, Identifier, check_identifier, referenced_tables_in
from .inspector import SchemaInspector

logger = logging.getLogger(__name__)


def sql_literal(value: Any) -> str:
    """Render a seed value as a SQL literal for display."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list)):
        value = json.dumps(value)
    return "'" + str(value).replace("'", "''") + "'"


class CreateTable(BaseMigration):
    """Create a table from its full column/constraint list when it does not exist."""

    kind: Literal["create_table"] = "create_table"
    table: Identifier
    columns: List[str]

    @field_validator("columns")
    @classmethod
    def _columns_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("a table needs at least one column")
        return value

    @property
    def target(self) -> str:
        return f"table {self.table}"

    @property
    def definition(self) -> str:
        body = ",\n    ".join(self.columns)
        return f"CREATE TABLE {self.table} (\n    {body}\n)"

    def referenced_tables(self) -> Set[str]:
        # A self reference is satisfied by the statement itself
        return referenced_tables_in(self.definition) - {self.table}

    def is_present(self, inspector: SchemaInspector) -> bool:
        return inspector.table_exists(self.table)

    def up(self, connection: Connection) -> bool:
        connection.execute(text(self.definition))
        logger.info(f"Table '{self.table}' created successfully.")
        return True


class AddColumn(BaseMigration):
    """Add one column to an existing table when the column is missing."""

    kind: Literal["add_column"] = "add_column"
    table: Identifier
    column: Identifier
    type: str
    default: Optional[str] = None

    @property
    def target(self) -> str:
        return f"column {self.table}.{self.column}"

    @property
    def definition(self) -> str:
        ddl = f"ALTER TABLE {self.table} ADD COLUMN {self.column} {self.type}"
        if self.default is not None:
            ddl += f" DEFAULT {self.default}"
        return ddl

    @property
    def applied_detail(self) -> str:
        return f"{self.target} added"

    def required_tables(self) -> Set[str]:
        return {self.table}

    def referenced_tables(self) -> Set[str]:
        return referenced_tables_in(self.type) - {self.table}

    def is_present(self, inspector: SchemaInspector) -> bool:
        return inspector.column_exists(self.table, self.column)

    def skip_detail(self, inspector: SchemaInspector) -> str:
        found = inspector.column_type(self.table, self.column) or ""
        declared = self.type.split()[0].split("(")[0].upper()
        if found and not found.upper().startswith(declared):
            logger.warning(
                f"Column {self.table}.{self.column} exists as {found}, declared as {self.type}; leaving it unchanged"
            )
            return f"already present (declared type {self.type}, found {found})"
        return "already present"

    def up(self, connection: Connection) -> bool:
        connection.execute(text(self.definition))
        logger.info(f"Added {self.column} column to {self.table} table")
        return True


class SeedRow(BaseMigration):
    """
    Insert a default row unless a row with the same natural key exists.

    The natural key doubles as the existence guard and, on insert, as a
    conflict-avoidance clause so a row written between the guard and the
    insert is never duplicated.
    """

    kind: Literal["seed_row"] = "seed_row"
    table: Identifier
    values: Dict[str, Any]
    key: List[str]

    @field_validator("values")
    @classmethod
    def _check_value_columns(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value:
            raise ValueError("a seed row needs at least one value")
        for name in value:
            check_identifier(name)
        return value

    @model_validator(mode="after")
    def _key_within_values(self) -> "SeedRow":
        if not self.key:
            raise ValueError("a seed row needs a natural key")
        missing = [name for name in self.key if name not in self.values]
        if missing:
            raise ValueError(f"natural key columns missing from values: {missing}")
        return self

    @property
    def predicate(self) -> Dict[str, Any]:
        return {name: self.values[name] for name in self.key}

    @property
    def target(self) -> str:
        key = ", ".join(f"{name}={value!r}" for name, value in self.predicate.items())
        return f"row {self.table}({key})"

    @property
    def definition(self) -> str:
        names = ", ".join(self.values)
        rendered = ", ".join(sql_literal(value) for value in self.values.values())
        condition = " AND ".join(
            f"{name} IS NULL" if value is None else f"{name} = {sql_literal(value)}"
            for name, value in self.predicate.items()
        )
        return (
            f"INSERT INTO {self.table} ({names}) SELECT {rendered} "
            f"WHERE NOT EXISTS (SELECT 1 FROM {self.table} WHERE {condition})"
        )

    @property
    def applied_detail(self) -> str:
        return f"{self.target} inserted"

    def required_tables(self) -> Set[str]:
        return {self.table}

    def is_present(self, inspector: SchemaInspector) -> bool:
        return inspector.row_exists(self.table, self.predicate)

    def _insert_statement(self, dialect_name: str, column_types: Optional[Dict[str, Any]] = None):
        column_types = column_types or {}
        target = table(self.table, *[column(name) for name in self.values])
        # The key check travels with the insert, so it holds without a unique index
        already_there = (
            select(literal(1))
            .select_from(target)
            .where(and_(*[target.c[name] == value for name, value in self.predicate.items()]))
            .correlate(None)
            .exists()
        )
        row = select(*[self._value_expression(name, value, column_types) for name, value in self.values.items()])
        row = row.where(~already_there)

        if dialect_name == "postgresql":
            return postgresql.insert(target).from_select(list(self.values), row).on_conflict_do_nothing()
        if dialect_name == "sqlite":
            return sqlite.insert(target).from_select(list(self.values), row).on_conflict_do_nothing()
        return insert(target).from_select(list(self.values), row)

    @staticmethod
    def _value_expression(name: str, value: Any, column_types: Dict[str, Any]):
        if value is None:
            return null()
        if name in column_types:
            # A bare literal in a SELECT list is typed text on PostgreSQL
            return cast(literal(value, column_types[name]), column_types[name])
        return literal(value)

    def up(self, connection: Connection) -> bool:
        column_types = None
        if connection.dialect.name == "postgresql":
            column_types = {col["name"]: col["type"] for col in inspect(connection).get_columns(self.table)}
        result = connection.execute(self._insert_statement(connection.dialect.name, column_types))
        if result.rowcount == 0:
            logger.info(f"Row {self.predicate} already in {self.table}, nothing inserted")
            return False
        logger.info(f"Seeded {self.table} with {self.predicate}")
        return True
