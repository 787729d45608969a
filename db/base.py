from typing import Optional

from peewee import DatabaseProxy, Model
from playhouse.db_url import connect

from core.logging import get_logger

# Bound to a concrete database by init_db(); tests point it at SQLite
db = DatabaseProxy()

log = get_logger("db")


class BaseModel(Model):
    class Meta:
        database = db


def bind_database(database_url: Optional[str] = None):
    """
    Bind the proxy to the database named by the URL.

    Accepts any playhouse.db_url scheme: postgresql+pool:// in production,
    sqlite:/// for local runs and tests.
    """
    if database_url is None:
        from core.settings import settings

        database_url = settings.database_url
        pool_options = {
            "max_connections": settings.db_max_connections,
            "stale_timeout": settings.db_stale_timeout,
        }
    else:
        pool_options = {}

    if "+pool" not in database_url:
        pool_options = {}

    database = connect(database_url, **pool_options)
    db.initialize(database)
    return database


# Function to initialize database connection
def init_db(database_url: Optional[str] = None):
    """Bind the database and create tables if they don't exist."""
    bind_database(database_url)
    db.connect(reuse_if_open=True)

    from .models import ALL_MODELS

    # Create tables if they don't exist (safe=True is idempotent)
    # Order matters for foreign key dependencies: reference data, then
    # teams/lineups/matches, then scores and their breakdown rows
    db.create_tables(ALL_MODELS, safe=True)
    log.info("database_initialized", tables=len(ALL_MODELS))


# Function to close database connection
def close_db():
    """Close database connection."""
    if db.obj is not None and not db.is_closed():
        db.close()
        log.info("database_connection_closed")


def run_with_connection(func, *args, **kwargs):
    """
    Call func with a database connection open on the current thread.

    Meant for asyncio.to_thread() workers: peewee connections are
    thread-local, so a worker opens its own and closes it afterwards. A
    connection that was already open is left alone.
    """
    opened = db.is_closed()
    if opened:
        db.connect()
    try:
        return func(*args, **kwargs)
    finally:
        if opened and not db.is_closed():
            db.close()
