"""Transaction helpers shared by the game services."""
from functools import wraps

from flask import current_app
from sqlalchemy import event

from wavelength import db
from wavelength.errors import WavelengthError


def configure_engine(engine) -> None:
    """Make SQLite write transactions take the database lock up front.

    pysqlite defers locking until the first write, so two requests that
    both read "no active round" can race into the insert. Emitting
    ``BEGIN IMMEDIATE`` serialises writers the way row locks do on
    PostgreSQL.
    """
    if engine.dialect.name != 'sqlite':
        return

    @event.listens_for(engine, 'connect')
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin_immediate(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def transactional(func):
    """Run a service function in one transaction.

    Commits on success. On any exception the session is rolled back and
    the exception is re-raised for the caller to handle. Do not commit
    inside the wrapped function.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
            db.session.commit()
            return result
        except WavelengthError as exc:
            current_app.logger.info(f"[rollback] {func.__name__}: {exc.message}")
            db.session.rollback()
            raise
        except Exception as exc:
            current_app.logger.error(f"Transaction failed in {func.__name__}: {exc}", exc_info=True)
            db.session.rollback()
            raise

    return wrapper
