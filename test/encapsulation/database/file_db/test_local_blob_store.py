"""
Tests for the local filesystem file storage
"""

import os
import stat
import time

import pytest

from config.encapsulation.database.file_db.local_config import LocalDBConfig
from encapsulation.data_model.schema import DownloadRequest, FileLocation, StoreRequest


@pytest.fixture
def local_store(tmp_path):
    return LocalDBConfig(base_path=str(tmp_path / "store")).build()


def test_local_blob_store(local_store, make_file, tmp_path):
    location = FileLocation("logs", "job/1.log")
    source = make_file("1.log", b"Hello, World!")

    local_store.store(StoreRequest(location, source))
    target = tmp_path / "out" / "1.log"
    local_store.download(DownloadRequest(location, target))

    assert target.read_bytes() == b"Hello, World!"
    meta = local_store.fetch_file_meta(location)
    assert meta.length == 13
    assert meta.meta_info.local_file_path == str(source.absolute())
    assert meta.meta_info.server


def test_overwrite(local_store, make_file, tmp_path):
    location = FileLocation("logs", "1.log")
    local_store.store(StoreRequest(location, make_file("a", b"first")))
    local_store.store(StoreRequest(location, make_file("b", b"second")))

    target = tmp_path / "out"
    local_store.download(DownloadRequest(location, target))
    assert target.read_bytes() == b"second"


def test_missing_file(local_store, tmp_path):
    location = FileLocation("logs", "missing.log")
    target = tmp_path / "out" / "missing.log"

    local_store.download(DownloadRequest(location, target))

    assert not target.exists()
    assert local_store.fetch_file_meta(location) is None


def test_names_cannot_escape_base_path(local_store, make_file, tmp_path):
    local_store.store(StoreRequest(FileLocation("../logs", "../../escape.log"), make_file("e", b"x")))

    assert not (tmp_path / "escape.log").exists()
    assert (tmp_path / "store" / "logs" / "files" / "escape.log").exists()


def test_clean_expired_files(local_store, make_file):
    old = FileLocation("logs", "old.log")
    new = FileLocation("logs", "new.log")
    other = FileLocation("other", "old.log")
    for location in (old, new, other):
        local_store.store(StoreRequest(location, make_file(location.name, b"x")))

    forty_days_ago = time.time() - 40 * 24 * 3600
    for location in (old, other):
        os.utime(local_store._file_path(location), (forty_days_ago, forty_days_ago))

    local_store.clean_expired_files("logs", 30)

    assert local_store.fetch_file_meta(old) is None
    assert not local_store._meta_path(old).exists()
    assert local_store.fetch_file_meta(new) is not None
    assert local_store.fetch_file_meta(other) is not None


def test_negative_days_is_ignored(local_store, make_file):
    location = FileLocation("logs", "1.log")
    local_store.store(StoreRequest(location, make_file("1.log", b"x")))

    local_store.clean_expired_files("logs", -1)

    assert local_store.fetch_file_meta(location) is not None


def test_huge_retention_is_ignored(local_store, make_file):
    location = FileLocation("logs", "1.log")
    local_store.store(StoreRequest(location, make_file("1.log", b"x")))

    local_store.clean_expired_files("logs", 1_000_000)

    assert local_store.fetch_file_meta(location) is not None


def test_downloaded_file_mode(local_store, make_file, tmp_path):
    location = FileLocation("logs", "1.log")
    local_store.store(StoreRequest(location, make_file("1.log", b"x")))
    umask = os.umask(0)
    os.umask(umask)

    target = tmp_path / "out" / "1.log"
    local_store.download(DownloadRequest(location, target))

    assert stat.S_IMODE(target.stat().st_mode) == 0o666 & ~umask
