"""
Shared fixtures: relational storage backed by a SQLite file per test
"""

import pytest

from config.encapsulation.database.file_db.relational_config import RelationalDBConfig
from encapsulation.database.relational_db.pool import ConnectionPool


@pytest.fixture(autouse=True)
def _fresh_pools():
    yield
    ConnectionPool.clear_instances()


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'files.db'}"


@pytest.fixture
def relational_config(sqlite_url):
    return RelationalDBConfig(url=sqlite_url, auto_create_table=True)


@pytest.fixture
def storage(relational_config):
    storage = relational_config.build()
    yield storage
    storage.close()


@pytest.fixture
def make_file(tmp_path):
    """Write bytes to a file under tmp_path/src and return its path"""
    def _make_file(name: str, content: bytes):
        path = tmp_path / "src" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path
    return _make_file
