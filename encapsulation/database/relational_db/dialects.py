"""
SQL templates for storing files in a relational table.

Every statement is a template bound to the table name when it is built. Values
are always passed as bound parameters. Oracle needs a sequence and a
before-insert trigger to generate ids, the others use their native
auto-increment column.

Content above the size threshold of the driver is moved in chunks: a row is
inserted with an empty blob and tagged with a one-off token in ``extra``,
chunks are appended to the row found by that token, and the token is cleared
with the final length. Reads fetch slices of the blob by row id.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy import BigInteger, DateTime, Integer, LargeBinary, String, bindparam, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.sql.selectable import TextualSelect

from encapsulation.database.file_db.base import ConfigurationError

DEFAULT_TABLE_NAME = "powerjob_files"

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]{0,127}$")

INSERT_SQL = (
    "INSERT INTO {table} (bucket, name, version, meta, length, status, data, extra, gmt_create, gmt_modified) "
    "VALUES (:bucket, :name, :version, :meta, :length, :status, {data}, :extra, :gmt_create, :gmt_modified)"
)

DELETE_SQL = "DELETE FROM {table} WHERE bucket = :bucket AND name = :name"

DELETE_EXPIRED_SQL = "DELETE FROM {table} WHERE bucket = :bucket AND gmt_modified < :cutoff"

QUERY_DATA_SQL = "SELECT data FROM {table} WHERE id = :id"

QUERY_CHUNK_SQL = "SELECT {chunk} AS chunk FROM {table} WHERE id = :id"

# Row being written in chunks, not visible to readers before commit
STREAMING_ROW_WHERE = "bucket = :bucket AND name = :name AND extra = :token"

FINISH_APPEND_SQL = "UPDATE {table} SET length = :length, extra = NULL WHERE " + STREAMING_ROW_WHERE

ORACLE_APPEND_SQL = """declare lob_data blob;
begin
    select data into lob_data from {table} where """ + STREAMING_ROW_WHERE + """ for update;
    dbms_lob.writeappend(lob_data, utl_raw.length(:chunk), :chunk);
end;"""

# Never select the data column here
QUERY_META_SQL = (
    "SELECT id, bucket, name, version, meta, length, status, extra, gmt_create, gmt_modified "
    "FROM {table} WHERE bucket = :bucket AND name = :name ORDER BY id DESC"
)

ORACLE_CREATE_TABLE_SQL = """declare num number;
begin
    select count(1) into num from user_tables where table_name = upper('{table}');
    if num = 0
    then
        execute immediate 'CREATE TABLE {table} (
            id NUMBER(19, 0) NOT NULL,
            bucket VARCHAR2(255) NOT NULL,
            name VARCHAR2(255) NOT NULL,
            version VARCHAR2(255) NOT NULL,
            meta VARCHAR2(4000),
            length NUMBER(19, 0) NOT NULL,
            status INT NOT NULL,
            data BLOB NOT NULL,
            extra VARCHAR2(255),
            gmt_create TIMESTAMP NOT NULL,
            gmt_modified TIMESTAMP,
            constraint PK_{table} primary key (id))';
        execute immediate 'CREATE INDEX IDX_{table}_LOC ON {table} (bucket, name)';
        execute immediate 'create sequence {sequence} minvalue 1 nomaxvalue increment by 1 start with 1 nocache';
        execute immediate 'create trigger {trigger} before insert on {table} for each row when (new.id is null)
                           begin
                               select {sequence}.nextval into :new.id from dual;
                           end;';
        commit;
    end if;
end;"""

MYSQL_CREATE_TABLE_SQL = """CREATE TABLE IF NOT EXISTS {table} (
    id BIGINT NOT NULL AUTO_INCREMENT,
    bucket VARCHAR(255) NOT NULL,
    name VARCHAR(255) NOT NULL,
    version VARCHAR(255) NOT NULL,
    meta VARCHAR(4000),
    length BIGINT NOT NULL,
    status INT NOT NULL,
    data LONGBLOB NOT NULL,
    extra VARCHAR(255),
    gmt_create DATETIME(6) NOT NULL,
    gmt_modified DATETIME(6),
    PRIMARY KEY (id),
    INDEX idx_{table}_loc (bucket, name)
)"""

POSTGRESQL_CREATE_TABLE_SQL = """CREATE TABLE IF NOT EXISTS {table} (
    id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
    bucket VARCHAR(255) NOT NULL,
    name VARCHAR(255) NOT NULL,
    version VARCHAR(255) NOT NULL,
    meta TEXT,
    length BIGINT NOT NULL,
    status INT NOT NULL,
    data BYTEA NOT NULL,
    extra VARCHAR(255),
    gmt_create TIMESTAMP NOT NULL,
    gmt_modified TIMESTAMP
)"""

# AUTOINCREMENT keeps ids monotonic and never reused
SQLITE_CREATE_TABLE_SQL = """CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bucket VARCHAR(255) NOT NULL,
    name VARCHAR(255) NOT NULL,
    version VARCHAR(255) NOT NULL,
    meta TEXT,
    length BIGINT NOT NULL,
    status INT NOT NULL,
    data BLOB NOT NULL,
    extra VARCHAR(255),
    gmt_create TIMESTAMP NOT NULL,
    gmt_modified TIMESTAMP
)"""

_META_COLUMNS = dict(
    id=BigInteger,
    bucket=String,
    name=String,
    version=String,
    meta=String,
    length=BigInteger,
    status=Integer,
    extra=String,
    gmt_create=DateTime,
    gmt_modified=DateTime,
)


def validate_table_name(table_name: str) -> str:
    """Return the table name if it is a plain SQL identifier, raise ConfigurationError otherwise"""
    if not table_name or not _TABLE_NAME_PATTERN.match(table_name):
        raise ConfigurationError(f"Invalid table name: {table_name!r}")
    return table_name


@dataclass(frozen=True)
class SqlDialect:
    """Statement templates for one database backend"""
    name: str
    create_table_sql: str
    # Lower-cased fragments of errors raised when a concurrent creator won the race
    already_exists_markers: Tuple[str, ...] = ("already exists",)
    # Literal for a zero-length blob
    empty_blob_sql: str = "X''"
    append_sql: str = "UPDATE {table} SET data = data || :chunk WHERE " + STREAMING_ROW_WHERE
    # Expression for `amount` bytes of data from the 1-based `offset`
    chunk_sql: str = "substr(data, :offset, :amount)"
    # Largest chunk the append and slice statements accept, None when unbounded
    max_write_chunk: Optional[int] = None
    max_read_chunk: Optional[int] = None

    def create_table_script(self, table_name: str) -> str:
        table = validate_table_name(table_name)
        return self.create_table_sql.format(
            table=table,
            sequence=f"{table}_ID_SEQ".upper(),
            trigger=f"{table}_ID_TRIG".upper(),
        )

    def insert(self, table_name: str, empty: bool = False) -> TextClause:
        """Insert one row; with empty=True the data column gets a zero-length blob instead of :data"""
        table = validate_table_name(table_name)
        binds = [
            bindparam("length", type_=BigInteger),
            bindparam("status", type_=Integer),
            bindparam("gmt_create", type_=DateTime),
            bindparam("gmt_modified", type_=DateTime),
        ]
        if empty:
            return text(INSERT_SQL.format(table=table, data=self.empty_blob_sql)).bindparams(*binds)
        return text(INSERT_SQL.format(table=table, data=":data")).bindparams(
            bindparam("data", type_=LargeBinary), *binds
        )

    def append_chunk(self, table_name: str) -> TextClause:
        # :chunk stays untyped so drivers bind it as plain bytes (RAW on Oracle)
        return text(self.append_sql.format(table=validate_table_name(table_name)))

    def finish_append(self, table_name: str) -> TextClause:
        return text(FINISH_APPEND_SQL.format(table=validate_table_name(table_name))).bindparams(
            bindparam("length", type_=BigInteger),
        )

    def delete(self, table_name: str) -> TextClause:
        return text(DELETE_SQL.format(table=validate_table_name(table_name)))

    def delete_expired(self, table_name: str) -> TextClause:
        return text(DELETE_EXPIRED_SQL.format(table=validate_table_name(table_name))).bindparams(
            bindparam("cutoff", type_=DateTime),
        )

    def select_data(self, table_name: str) -> TextualSelect:
        return text(QUERY_DATA_SQL.format(table=validate_table_name(table_name))).columns(data=LargeBinary)

    def select_chunk(self, table_name: str) -> TextualSelect:
        sql = QUERY_CHUNK_SQL.format(table=validate_table_name(table_name), chunk=self.chunk_sql)
        return text(sql).columns(chunk=LargeBinary)

    def select_meta(self, table_name: str) -> TextualSelect:
        return text(QUERY_META_SQL.format(table=validate_table_name(table_name))).columns(**_META_COLUMNS)

    def is_already_exists_error(self, error: Exception) -> bool:
        message = str(error).lower()
        return any(marker in message for marker in self.already_exists_markers)


ORACLE = SqlDialect(
    name="oracle",
    create_table_sql=ORACLE_CREATE_TABLE_SQL,
    # ORA-00955: name is already used by an existing object
    already_exists_markers=("ora-00955", "already used by an existing object"),
    # A zero-length bind is NULL on Oracle
    empty_blob_sql="EMPTY_BLOB()",
    append_sql=ORACLE_APPEND_SQL,
    chunk_sql="dbms_lob.substr(data, :amount, :offset)",
    # PL/SQL RAW binds stop at 32767 bytes, SQL RAW results at 2000
    max_write_chunk=32000,
    max_read_chunk=2000,
)

MYSQL = SqlDialect(
    name="mysql",
    create_table_sql=MYSQL_CREATE_TABLE_SQL,
    already_exists_markers=("already exists", "1050"),
    append_sql="UPDATE {table} SET data = CONCAT(data, :chunk) WHERE " + STREAMING_ROW_WHERE,
    chunk_sql="SUBSTRING(data, :offset, :amount)",
)

POSTGRESQL = SqlDialect(
    name="postgresql",
    create_table_sql=POSTGRESQL_CREATE_TABLE_SQL,
    # Concurrent CREATE TABLE IF NOT EXISTS can trip the pg_type unique index
    already_exists_markers=("already exists", "pg_type_typname_nsp_index"),
    empty_blob_sql="''::bytea",
    chunk_sql="substring(data from CAST(:offset AS INTEGER) for CAST(:amount AS INTEGER))",
)

SQLITE = SqlDialect(
    name="sqlite",
    create_table_sql=SQLITE_CREATE_TABLE_SQL,
    # || yields text, the cast keeps the bytes as a blob
    append_sql="UPDATE {table} SET data = CAST(data || :chunk AS BLOB) WHERE " + STREAMING_ROW_WHERE,
)

DIALECTS: Dict[str, SqlDialect] = {
    "oracle": ORACLE,
    "mysql": MYSQL,
    "mariadb": MYSQL,
    "postgresql": POSTGRESQL,
    "sqlite": SQLITE,
}


def get_dialect(backend_name: str) -> SqlDialect:
    """Look up the templates for a SQLAlchemy backend name such as "oracle" or "postgresql" """
    try:
        return DIALECTS[backend_name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported database backend '{backend_name}', expected one of {sorted(DIALECTS)}"
        ) from None
