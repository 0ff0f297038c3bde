from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator
import logging

from sqlalchemy import Connection, Engine, create_engine
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import QueuePool

from encapsulation.database.file_db.base import ConfigurationError
from framework.module import AbstractModule
from framework.shared_module_decorator import shared_module

if TYPE_CHECKING:
    from config.encapsulation.database.relational_db.connection_pool_config import ConnectionPoolConfig

logger = logging.getLogger(__name__)


def _is_memory_database(url: URL) -> bool:
    database = url.database or ""
    return database in ("", ":memory:") or database.startswith("file::memory:") or url.query.get("mode") == "memory"


@shared_module
class ConnectionPool(AbstractModule):
    """
    Pool of database connections shared by every operation of a storage backend.

    The pool is created once from its config and verified by opening a single
    connection; failing that is fatal. Operations borrow one connection for
    their whole duration through ``connection()`` or ``transaction()`` and the
    connection always goes back to the pool when the block exits, also on
    errors. Nothing holds a connection across operations.

    Sizing follows ``minimum_idle`` connections kept in the pool and at most
    ``maximum_pool_size`` open at once; connections beyond ``minimum_idle``
    are closed when returned.

    Instances are shared: configs with identical settings get the same pool.
    """

    def __init__(self, config: "ConnectionPoolConfig"):
        super().__init__(config)
        self.url = self._build_url()
        logger.info(f"Initializing connection pool for {self.rendered_url}")
        self.engine = self._create_engine()
        self._verify_connectivity()
        logger.info(f"Connection pool ready for {self.rendered_url}")

    def _build_url(self) -> URL:
        try:
            url = make_url(self.config.url)
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid database url: {e}") from e
        if self.config.driver:
            url = url.set(drivername=self.config.driver)
        if self.config.username:
            url = url.set(username=self.config.username)
        if self.config.password:
            url = url.set(password=self.config.password)
        if url.get_backend_name() == "sqlite" and _is_memory_database(url):
            raise ConfigurationError(
                "In-memory SQLite is not supported, every pooled connection would open its own empty database"
            )
        return url

    def _create_engine(self) -> Engine:
        connect_args = {}
        if self.url.get_backend_name() == "sqlite":
            # Pooled sqlite connections are handed to different threads
            connect_args["check_same_thread"] = False
        try:
            return create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=self.config.minimum_idle,
                max_overflow=self.config.maximum_pool_size - self.config.minimum_idle,
                pool_pre_ping=True,
                echo=self.config.echo_sql,
                connect_args=connect_args,
            )
        except (ArgumentError, ImportError) as e:
            raise ConfigurationError(f"Cannot create engine for {self.rendered_url}: {e}") from e

    def _verify_connectivity(self) -> None:
        try:
            with self.engine.connect():
                pass
        except SQLAlchemyError as e:
            logger.error(f"Cannot connect to {self.rendered_url}: {e}")
            self.engine.dispose()
            raise ConfigurationError(f"Cannot connect to {self.rendered_url}") from e

    @property
    def rendered_url(self) -> str:
        """Database url safe for logs"""
        return self.url.render_as_string(hide_password=True)

    @property
    def backend_name(self) -> str:
        return self.url.get_backend_name()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Borrow a connection for read-only work"""
        with self.engine.connect() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Borrow a connection inside a transaction, committed on success and rolled back on error"""
        with self.engine.begin() as conn:
            yield conn

    def checked_out(self) -> int:
        """Number of connections currently borrowed"""
        return self.engine.pool.checkedout()

    def dispose(self) -> None:
        """Close every pooled connection"""
        self.engine.dispose()
        logger.info(f"Connection pool for {self.rendered_url} disposed")
