"""
Tests for the per-backend SQL templates
"""

import pytest

from encapsulation.database.file_db.base import ConfigurationError
from encapsulation.database.relational_db.dialects import (
    DEFAULT_TABLE_NAME,
    MYSQL,
    ORACLE,
    POSTGRESQL,
    SQLITE,
    get_dialect,
    validate_table_name,
)


@pytest.mark.parametrize("backend, dialect", [
    ("oracle", ORACLE),
    ("mysql", MYSQL),
    ("mariadb", MYSQL),
    ("postgresql", POSTGRESQL),
    ("sqlite", SQLITE),
    ("SQLite", SQLITE),
])
def test_get_dialect(backend, dialect):
    assert get_dialect(backend) is dialect


def test_unknown_backend():
    with pytest.raises(ConfigurationError):
        get_dialect("mssql")


@pytest.mark.parametrize("name", [DEFAULT_TABLE_NAME, "MY_FILES", "_files", "files$2"])
def test_valid_table_names(name):
    assert validate_table_name(name) == name


@pytest.mark.parametrize("name", ["", "1files", "files; DROP TABLE x", "my-files", "a" * 129, "files name"])
def test_invalid_table_names(name):
    with pytest.raises(ConfigurationError):
        validate_table_name(name)


def test_oracle_script_is_one_conditional_block():
    script = ORACLE.create_table_script("my_files")

    assert script.startswith("declare")
    assert "upper('my_files')" in script
    assert "create sequence MY_FILES_ID_SEQ" in script
    assert "create trigger MY_FILES_ID_TRIG before insert on my_files" in script
    assert "MY_FILES_ID_SEQ.nextval" in script
    assert script.rstrip().endswith("end;")


@pytest.mark.parametrize("dialect", [MYSQL, POSTGRESQL, SQLITE])
def test_other_scripts_are_conditional(dialect):
    script = dialect.create_table_script("my_files")

    assert script.startswith("CREATE TABLE IF NOT EXISTS my_files")
    assert "UNIQUE" not in script.upper()


@pytest.mark.parametrize("dialect", [ORACLE, MYSQL, POSTGRESQL, SQLITE])
def test_scripts_have_every_column(dialect):
    script = dialect.create_table_script("my_files")
    for column in ("id", "bucket", "name", "version", "meta", "length", "status",
                   "data", "extra", "gmt_create", "gmt_modified"):
        assert f"{column} " in script


def test_meta_query_does_not_select_data():
    stmt = SQLITE.select_meta("my_files")

    assert "data" not in [c.name for c in stmt.selected_columns]
    assert [c.name for c in SQLITE.select_data("my_files").selected_columns] == ["data"]
    assert [c.name for c in SQLITE.select_chunk("my_files").selected_columns] == ["chunk"]


def test_values_are_bound_parameters():
    assert set(SQLITE.delete("my_files").compile().params) == {"bucket", "name"}
    assert set(SQLITE.delete_expired("my_files").compile().params) == {"bucket", "cutoff"}
    assert set(SQLITE.insert("my_files").compile().params) == {
        "bucket", "name", "version", "meta", "length", "status", "data", "extra", "gmt_create", "gmt_modified",
    }
    assert set(SQLITE.append_chunk("my_files").compile().params) == {"bucket", "name", "token", "chunk"}
    assert set(SQLITE.finish_append("my_files").compile().params) == {"bucket", "name", "token", "length"}
    assert set(SQLITE.select_chunk("my_files").compile().params) == {"id", "offset", "amount"}


def test_templates_reject_invalid_table_name():
    with pytest.raises(ConfigurationError):
        SQLITE.insert("files; DROP TABLE x")


def test_already_exists_markers():
    assert ORACLE.is_already_exists_error(Exception("ORA-00955: name is already used by an existing object"))
    assert SQLITE.is_already_exists_error(Exception("table powerjob_files already exists"))
    assert not SQLITE.is_already_exists_error(Exception("database is locked"))


@pytest.mark.parametrize("dialect, literal", [
    (ORACLE, "EMPTY_BLOB()"),
    (MYSQL, "X''"),
    (POSTGRESQL, "''::bytea"),
    (SQLITE, "X''"),
])
def test_empty_insert_binds_no_data(dialect, literal):
    stmt = dialect.insert("my_files", empty=True)

    assert literal in stmt.text
    assert "data" not in stmt.compile().params


def test_oracle_appends_through_lob_api():
    sql = ORACLE.append_chunk("my_files").text

    assert "for update" in sql
    assert "dbms_lob.writeappend(lob_data, utl_raw.length(:chunk), :chunk)" in sql
    assert "dbms_lob.substr(data, :amount, :offset)" in ORACLE.select_chunk("my_files").element.text
    assert ORACLE.max_write_chunk <= 32767
    assert ORACLE.max_read_chunk <= 2000


@pytest.mark.parametrize("dialect", [MYSQL, POSTGRESQL, SQLITE])
def test_chunks_are_unbounded_elsewhere(dialect):
    assert dialect.max_write_chunk is None
    assert dialect.max_read_chunk is None
