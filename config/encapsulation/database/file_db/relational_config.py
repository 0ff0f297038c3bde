"""Configuration for storing files in a relational database table"""

from typing import ClassVar, Literal, Optional

from pydantic import Field, field_validator

from config.encapsulation.database.file_db.base_config import FileDBConfig, LOWEST_PRECEDENCE
from config.encapsulation.database.relational_db.connection_pool_config import ConnectionPoolConfig
from encapsulation.database.file_db.base import ConfigurationError
from encapsulation.database.file_db.relational import RelationalDB
from encapsulation.database.relational_db.dialects import DEFAULT_TABLE_NAME, validate_table_name


class RelationalDBConfig(FileDBConfig):
    """Configuration for the relational file storage backend

    Databases are not built for large scale file storage: use this backend for
    modest volumes only and prefer object storage otherwise. Large files may
    also need the backend's packet or LOB limits raised.

    Properties:
        DFS_RELATIONAL_DRIVER: SQLAlchemy drivername, e.g. oracle+oracledb
        DFS_RELATIONAL_URL: SQLAlchemy database url, activates this backend
        DFS_RELATIONAL_USERNAME / DFS_RELATIONAL_PASSWORD: credentials
        DFS_RELATIONAL_AUTO_CREATE_TABLE: create the table on startup
        DFS_RELATIONAL_TABLE_NAME: table name, powerjob_files by default
    """
    type: Literal["relational_file_store"] = "relational_file_store"

    backend_type: ClassVar[str] = "relational"
    priority: ClassVar[int] = LOWEST_PRECEDENCE - 4
    condition_keys: ClassVar[tuple] = ("url",)
    property_keys: ClassVar[dict] = {
        "driver": "driver",
        "url": "url",
        "username": "username",
        "password": "password",
        "auto_create_table": "auto_create_table",
        "table_name": "table_name",
    }
    boolean_fields: ClassVar[tuple] = ("auto_create_table",)

    driver: Optional[str] = None
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    auto_create_table: bool = False
    table_name: str = DEFAULT_TABLE_NAME

    minimum_idle: int = Field(default=2, ge=2)
    maximum_pool_size: int = Field(default=32, ge=32)
    echo_sql: bool = False

    # Files above this size are streamed in chunks of at most this size instead of being read whole
    max_blob_size: int = Field(default=64 * 1024 * 1024, gt=0)
    # Run the delete and the insert of an overwrite in one transaction
    atomic_overwrite: bool = False

    @field_validator("table_name")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        try:
            return validate_table_name(value)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    def pool_config(self) -> ConnectionPoolConfig:
        return ConnectionPoolConfig(
            url=self.url,
            driver=self.driver,
            username=self.username,
            password=self.password,
            minimum_idle=self.minimum_idle,
            maximum_pool_size=self.maximum_pool_size,
            echo_sql=self.echo_sql,
        )

    def build(self) -> RelationalDB:
        return RelationalDB(self, pool=self.pool_config().build())
