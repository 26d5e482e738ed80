"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file `app.db` at the repository
root unless overridden) and provides the small helpers used by the
application, the CLI scripts and the tests.
"""

from sqlalchemy import text
from sqlmodel import SQLModel, create_engine, Session

from .config import settings


def _connect_args(url: str) -> dict:
    # SQLite connections are shared across the threadpool FastAPI runs sync routes in
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args(settings.DATABASE_URL))


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and tests; a
    production deployment should manage the schema with a proper
    migration tool (alembic) instead.
    """
    # register the table classes on SQLModel.metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def check_connection() -> bool:
    """Run a trivial query and report whether the database answered."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
