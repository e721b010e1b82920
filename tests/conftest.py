import logging

import pytest
from sqlalchemy import inspect, text

from propertyops_db.database import create_db_engine
from propertyops_db.migrations import MigrationRunner

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'propertyops.db'}"


@pytest.fixture
def engine(database_url):
    engine = create_db_engine(database_url, echo=False)
    yield engine
    engine.dispose()


@pytest.fixture
def runner(engine):
    return MigrationRunner(engine=engine)


@pytest.fixture
def execute(engine):
    """Run raw SQL in its own committed transaction."""

    def _execute(*statements):
        with engine.begin() as connection:
            for statement in statements:
                connection.execute(text(statement))

    return _execute


@pytest.fixture
def fetch(engine):
    def _fetch(query):
        with engine.connect() as connection:
            return [tuple(row) for row in connection.execute(text(query))]

    return _fetch


@pytest.fixture
def table_names(engine):
    def _table_names():
        with engine.connect() as connection:
            return set(inspect(connection).get_table_names())

    return _table_names


@pytest.fixture
def users_table(execute):
    execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL UNIQUE)",
        "INSERT INTO users (id, email) VALUES (1, 'admin@example.com')",
    )
