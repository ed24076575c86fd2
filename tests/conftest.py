import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest
from sqlalchemy import create_engine, text


@pytest.fixture
def sqlite_url(tmp_path):
    """File-backed SQLite database with a small customer table."""
    url = f"sqlite:///{tmp_path / 'runner.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE customer (id INTEGER PRIMARY KEY, name TEXT)"))
        conn.execute(text("INSERT INTO customer (name) VALUES ('a'), ('b'), ('c')"))
    engine.dispose()
    return url


@pytest.fixture
def broken_sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}"
