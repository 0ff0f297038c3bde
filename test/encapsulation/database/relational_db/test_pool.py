"""
Tests for the pooled engine shared by relational storage operations
"""

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from config.encapsulation.database.relational_db.connection_pool_config import ConnectionPoolConfig
from encapsulation.database.file_db.base import ConfigurationError


def test_pool_bounds(sqlite_url):
    pool = ConnectionPoolConfig(url=sqlite_url).build()

    assert pool.backend_name == "sqlite"
    assert pool.engine.pool.size() == 2
    assert pool.engine.pool._max_overflow == 30


def test_pool_bounds_are_validated(sqlite_url):
    with pytest.raises(ValidationError):
        ConnectionPoolConfig(url=sqlite_url, minimum_idle=1)
    with pytest.raises(ValidationError):
        ConnectionPoolConfig(url=sqlite_url, maximum_pool_size=8)
    with pytest.raises(ValidationError):
        ConnectionPoolConfig(url=sqlite_url, minimum_idle=40, maximum_pool_size=32)


def test_connection_is_released_on_error(sqlite_url):
    pool = ConnectionPoolConfig(url=sqlite_url).build()

    with pytest.raises(RuntimeError):
        with pool.connection() as conn:
            conn.execute(text("SELECT 1"))
            assert pool.checked_out() == 1
            raise RuntimeError("boom")

    assert pool.checked_out() == 0


def test_transaction_rolls_back_on_error(sqlite_url):
    pool = ConnectionPoolConfig(url=sqlite_url).build()
    with pool.transaction() as conn:
        conn.execute(text("CREATE TABLE t (v INTEGER)"))

    with pytest.raises(RuntimeError):
        with pool.transaction() as conn:
            conn.execute(text("INSERT INTO t (v) VALUES (1)"))
            raise RuntimeError("boom")

    with pool.connection() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM t")).scalar() == 0
    assert pool.checked_out() == 0


def test_identical_settings_share_pool(sqlite_url):
    assert ConnectionPoolConfig(url=sqlite_url).build() is ConnectionPoolConfig(url=sqlite_url).build()


def test_credentials_override_url_and_stay_out_of_logs(sqlite_url):
    pool = ConnectionPoolConfig(url=sqlite_url, username="scott", password="tiger").build()

    assert pool.url.username == "scott"
    assert pool.url.password == "tiger"
    assert "tiger" not in pool.rendered_url


def test_invalid_url_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ConnectionPoolConfig(url="not a url").build()


def test_unreachable_backend_is_a_configuration_error(tmp_path):
    url = f"sqlite:///{tmp_path / 'missing-dir' / 'files.db'}"
    with pytest.raises(ConfigurationError):
        ConnectionPoolConfig(url=url).build()


def test_missing_driver_is_a_configuration_error(sqlite_url):
    with pytest.raises(ConfigurationError):
        ConnectionPoolConfig(url=sqlite_url, driver="sqlite+nosuchdriver").build()


@pytest.mark.parametrize("url", [
    "sqlite://",
    "sqlite:///:memory:",
    "sqlite:///file::memory:?cache=shared&uri=true",
    "sqlite:///file:files?mode=memory&uri=true",
])
def test_in_memory_sqlite_is_a_configuration_error(url):
    with pytest.raises(ConfigurationError):
        ConnectionPoolConfig(url=url).build()
