# app/db/engine.py

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

# Execution option marking transactions that will write
BEGIN_IMMEDIATE = "begin_immediate"


def get_engine(db_url: str) -> Engine:
    # echo=True if you want to see SQL printed in the terminal
    if not db_url.startswith("sqlite"):
        return create_engine(db_url, future=True, pool_pre_ping=True)

    engine = create_engine(
        db_url,
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite defers BEGIN until the first write, which lets two writers
    # read the same highest invoice number. Writers take the lock up front;
    # reads keep a plain deferred BEGIN.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(BEGIN_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def get_writer(engine: Engine) -> Engine:
    """Same pool and listeners as engine, but transactions begin IMMEDIATE on SQLite."""
    return engine.execution_options(**{BEGIN_IMMEDIATE: True})
