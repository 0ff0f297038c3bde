"""Configuration for the relational database connection pool"""

from typing import Literal, Optional

from pydantic import Field, model_validator

from framework.config import AbstractConfig
from encapsulation.database.relational_db.pool import ConnectionPool


class ConnectionPoolConfig(AbstractConfig):
    """Configuration for a pooled SQLAlchemy engine

    ``url`` is a SQLAlchemy database URL, e.g.
    ``oracle+oracledb://@127.0.0.1:1521/?service_name=orcl`` or
    ``postgresql+psycopg://localhost:5432/powerjob``. ``driver`` overrides the
    URL's drivername, ``username``/``password`` override its credentials.
    """
    type: Literal["connection_pool"] = "connection_pool"

    url: str
    driver: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    # Connections kept open in the pool
    minimum_idle: int = Field(default=2, ge=2)
    # Upper bound of connections open at the same time
    maximum_pool_size: int = Field(default=32, ge=32)
    echo_sql: bool = False

    @model_validator(mode="after")
    def _check_bounds(self) -> "ConnectionPoolConfig":
        if self.maximum_pool_size < self.minimum_idle:
            raise ValueError("maximum_pool_size must not be smaller than minimum_idle")
        return self

    def build(self) -> ConnectionPool:
        return ConnectionPool(self)
