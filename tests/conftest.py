from pathlib import Path
import os
import tempfile
import pytest

# Point the app at a throwaway SQLite file before anything imports coursemgmt.
_DB_DIR = Path(tempfile.mkdtemp(prefix="coursemgmt-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR / 'test.db'}")
os.environ.setdefault("ENV", "dev")

from sqlmodel import SQLModel, Session  # noqa: E402
from coursemgmt.database import engine, create_db_and_tables  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test empty tables."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture
def session(reset_db):
    with Session(engine) as s:
        yield s
