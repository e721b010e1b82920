from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from typing import Optional
import os
import logging

from . import config

logger = logging.getLogger(__name__)


def _enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """
    pysqlite only opens a transaction before DML, so CREATE/ALTER statements
    would commit on their own. Take over BEGIN so DDL joins the scope.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for the target store, SQLite or PostgreSQL."""
    database_url = database_url or config.get_database_url()
    echo = config.get_echo_sql() if echo is None else echo
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            directory = os.path.dirname(os.path.abspath(url.database))
            os.makedirs(directory, exist_ok=True)
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo
        )
        _enable_sqlite_transactional_ddl(engine)
        logger.debug(f"Using SQLite database: {url.database}")
    else:
        # No in-engine timeout: hung calls are bounded by the connection settings
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=0,
            pool_pre_ping=True,
            echo=echo,
            connect_args={
                "connect_timeout": config.get_connect_timeout(),
                "options": f"-c statement_timeout={config.get_statement_timeout_ms()}"
            }
        )
        logger.debug(f"Using PostgreSQL database: {url.host}/{url.database}")

    return engine
