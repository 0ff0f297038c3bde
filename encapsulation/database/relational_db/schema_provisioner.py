import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from encapsulation.database.file_db.base import SchemaProvisioningError
from .dialects import SqlDialect, validate_table_name
from .pool import ConnectionPool

logger = logging.getLogger(__name__)


class SchemaProvisioner:
    """
    Creates the file table, plus the id sequence and trigger where the backend
    needs them, when it does not exist yet.

    ensure_table() is safe to call on every start and from several processes at
    once: the creation script is a single conditional statement, and an
    "already exists" failure from a concurrent creator is ignored once the
    table is visible.
    """

    def __init__(self, pool: ConnectionPool, dialect: SqlDialect, table_name: str):
        self.pool = pool
        self.dialect = dialect
        self.table_name = validate_table_name(table_name)

    def table_exists(self) -> bool:
        """Check for the table, ignoring case since some backends upper-case identifiers"""
        with self.pool.connection() as conn:
            table_names = inspect(conn).get_table_names()
        expected = self.table_name.lower()
        return any(name.lower() == expected for name in table_names)

    def ensure_table(self) -> bool:
        """Create the table if it is missing

        Returns:
            True if this call ran the creation script, False if the table was already there
        """
        try:
            if self.table_exists():
                logger.info(f"Table {self.table_name} already exists, skip creation")
                return False

            script = self.dialect.create_table_script(self.table_name)
            logger.info(f"Creating table {self.table_name} with {self.dialect.name} script: {script}")
            with self.pool.transaction() as conn:
                conn.exec_driver_sql(script)
        except SQLAlchemyError as e:
            if self.dialect.is_already_exists_error(e) and self._exists_quietly():
                logger.info(f"Table {self.table_name} was created concurrently, ignoring: {e}")
                return False
            logger.error(f"Failed to create table {self.table_name}: {e}")
            raise SchemaProvisioningError(f"Failed to create table {self.table_name}") from e

        logger.info(f"Auto create table {self.table_name} successfully")
        return True

    def _exists_quietly(self) -> bool:
        try:
            return self.table_exists()
        except SQLAlchemyError as e:
            logger.warning(f"Cannot check table {self.table_name} after creation failure: {e}")
            return False
