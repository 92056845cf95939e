import pytest
from shared.db import drop_db, make_engine, setup_db


@pytest.fixture()
def engine():
    """A private in-memory SQLite database with every checkout table."""
    engine = make_engine("sqlite://")
    setup_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture()
def file_engine(tmp_path):
    """A file-backed SQLite database, for tests that write from many threads."""
    engine = make_engine(f"sqlite:///{tmp_path / 'checkout.db'}")
    setup_db(engine)
    yield engine
    engine.dispose()
