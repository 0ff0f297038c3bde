from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Dict, Iterator, Optional
import logging
import os
import time
import uuid

from sqlalchemy import Connection
from sqlalchemy.exc import SQLAlchemyError

from .base import FileDB, StorageOperationError
from encapsulation.data_model.schema import (
    DownloadRequest,
    FileLocation,
    FileMeta,
    FileMetaInfo,
    FileStatus,
    StoreRequest,
)
from encapsulation.database.relational_db.dialects import get_dialect
from encapsulation.database.relational_db.pool import ConnectionPool
from encapsulation.database.relational_db.schema_provisioner import SchemaProvisioner
from encapsulation.database.utils.file_utils import replace_file, write_chunks

if TYPE_CHECKING:
    from config.encapsulation.database.file_db.relational_config import RelationalDBConfig

logger = logging.getLogger(__name__)

# Single version per file until multi-version storage exists
FILE_VERSION = "mu"

# Reads retried when a concurrent overwrite deletes the row being downloaded
_DOWNLOAD_ATTEMPTS = 3


class RelationalDB(FileDB):
    """
    Relational database implementation of the file storage contract, keeping
    every file as one row with its content in a blob column.

    Row layout: id (generated), bucket, name, version, meta (JSON provenance),
    length, status, data (blob), extra, gmt_create, gmt_modified.

    Overwrite protocol:
    - store() deletes the rows of the location, then inserts a new row
    - committed rows are never updated in place
    - the delete and the insert are separate statements, so concurrent stores
      of the same location are not linearizable: both rows may stay visible
      until the next overwrite, and readers always see the newest row
    - a failed delete is logged and the insert still runs; a failed insert
      after a successful delete leaves the location empty
    - with atomic_overwrite enabled both statements share one transaction and
      a failed delete aborts the store

    Content size:
    - files up to max_blob_size go in and out in one statement
    - larger files are appended chunk by chunk inside the insert transaction
      and read back in slices, so memory use stays bounded by max_blob_size

    Resources:
    - every operation borrows exactly one pooled connection and returns it on
      every exit path
    - the pool is created by the config and injected; close() disposes it

    Typical usage:
        >>> config = RelationalDBConfig(url="sqlite:///files.db", auto_create_table=True)
        >>> storage = config.build()
        >>> storage.store(StoreRequest(FileLocation("uploads", "report.csv"), "report.csv"))
        >>> storage.download(DownloadRequest(FileLocation("uploads", "report.csv"), "/tmp/report.csv"))
        >>> meta = storage.fetch_file_meta(FileLocation("uploads", "report.csv"))
    """

    def __init__(self, config: "RelationalDBConfig", pool: ConnectionPool):
        super().__init__(config)
        self.pool = pool
        self.table_name = config.table_name
        try:
            self.dialect = get_dialect(pool.backend_name)
            self.provisioner = SchemaProvisioner(pool, self.dialect, self.table_name)
            if config.auto_create_table:
                self.provisioner.ensure_table()
        except Exception as e:
            logger.error(f"Failed to initialize relational file storage on {pool.rendered_url}: {e}")
            raise
        logger.info(
            f"Relational file storage initialized on {pool.rendered_url}, table: {self.table_name}, "
            f"THIS WILL BE THE STORAGE LAYER"
        )

    @staticmethod
    def _location_params(file_location: FileLocation) -> Dict[str, Any]:
        return {"bucket": file_location.bucket, "name": file_location.name}

    def _write_chunk_size(self) -> int:
        return min(self.config.max_blob_size, self.dialect.max_write_chunk or self.config.max_blob_size)

    def _read_chunk_size(self) -> int:
        return min(self.config.max_blob_size, self.dialect.max_read_chunk or self.config.max_blob_size)

    def _read_small_file(self, source: BinaryIO) -> Optional[bytes]:
        """Content of the source if it fits in max_blob_size, None if it has to be streamed"""
        limit = self.config.max_blob_size
        if os.fstat(source.fileno()).st_size > limit:
            return None
        data = source.read(limit + 1)
        if len(data) > limit:
            # Grew since the size check
            source.seek(0)
            return None
        return data

    def _delete_by_location(self, file_location: FileLocation) -> int:
        """Delete every row of the location; failures are logged and swallowed"""
        try:
            with self.pool.transaction() as conn:
                result = conn.execute(self.dialect.delete(self.table_name), self._location_params(file_location))
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete existing file [{file_location}] before overwrite, continue anyway: {e}")
            return 0

    def _row_params(self, file_location: FileLocation, local_file: Path, length: int) -> Dict[str, Any]:
        now = datetime.now()
        return {
            **self._location_params(file_location),
            "version": FILE_VERSION,
            "meta": FileMetaInfo.for_local_file(local_file).to_json(),
            "length": length,
            "status": int(FileStatus.ENABLE),
            "extra": None,
            "gmt_create": now,
            "gmt_modified": now,
        }

    def _insert(self, conn: Connection, file_location: FileLocation, local_file: Path,
                data: Optional[bytes], source: BinaryIO) -> None:
        if data is None:
            self._insert_streaming(conn, file_location, local_file, source)
        elif data:
            conn.execute(
                self.dialect.insert(self.table_name),
                {**self._row_params(file_location, local_file, len(data)), "data": data},
            )
        else:
            conn.execute(
                self.dialect.insert(self.table_name, empty=True), self._row_params(file_location, local_file, 0)
            )

    def _insert_streaming(self, conn: Connection, file_location: FileLocation, local_file: Path,
                          source: BinaryIO) -> None:
        """Insert an empty row tagged with a token, append the file chunk by chunk, then clear the token"""
        token = uuid.uuid4().hex
        params = self._row_params(file_location, local_file, os.fstat(source.fileno()).st_size)
        params["extra"] = token
        conn.execute(self.dialect.insert(self.table_name, empty=True), params)

        row = {**self._location_params(file_location), "token": token}
        append = self.dialect.append_chunk(self.table_name)
        chunk_size = self._write_chunk_size()
        written = chunks = 0
        for chunk in iter(lambda: source.read(chunk_size), b""):
            conn.execute(append, {**row, "chunk": chunk})
            written += len(chunk)
            chunks += 1
        conn.execute(self.dialect.finish_append(self.table_name), {**row, "length": written})
        logger.debug(f"Streamed {written} bytes of [{file_location}] in {chunks} chunks")

    def store(self, store_request: StoreRequest) -> None:
        """Store a local file, replacing whatever the location held

        Files up to max_blob_size are read and inserted in one statement,
        larger ones are streamed in chunks inside the insert transaction.
        """
        start = time.perf_counter()
        file_location = store_request.file_location
        local_file = Path(store_request.local_file)

        try:
            # Open and read before deleting so an unreadable source keeps the old content
            source = open(local_file, "rb")
        except OSError as e:
            logger.error(f"Store [{file_location}] failed, cannot read {local_file}: {e}")
            raise StorageOperationError(f"Cannot read {local_file}") from e

        with source:
            try:
                data = self._read_small_file(source)
            except OSError as e:
                logger.error(f"Store [{file_location}] failed, cannot read {local_file}: {e}")
                raise StorageOperationError(f"Cannot read {local_file}") from e

            try:
                if self.config.atomic_overwrite:
                    with self.pool.transaction() as conn:
                        conn.execute(self.dialect.delete(self.table_name), self._location_params(file_location))
                        self._insert(conn, file_location, local_file, data, source)
                else:
                    self._delete_by_location(file_location)
                    with self.pool.transaction() as conn:
                        self._insert(conn, file_location, local_file, data, source)
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Store [{file_location}] failed, cost: {time.perf_counter() - start:.3f}s, error: {e}")
                raise StorageOperationError(f"Failed to store {file_location}") from e

        logger.info(f"Store [{file_location}] successfully, cost: {time.perf_counter() - start:.3f}s")

    def _read_content(self, conn: Connection, row_id: int, length: int) -> Iterator[bytes]:
        """Content of a row, in one piece up to max_blob_size and in slices above"""
        if length <= self.config.max_blob_size:
            row = conn.execute(self.dialect.select_data(self.table_name), {"id": row_id}).first()
            if row is None:
                raise _RowReplaced(row_id)
            yield bytes(row.data or b"")
            return

        select_chunk = self.dialect.select_chunk(self.table_name)
        chunk_size = self._read_chunk_size()
        offset = 0
        while offset < length:
            row = conn.execute(select_chunk, {"id": row_id, "offset": offset + 1, "amount": chunk_size}).first()
            if row is None:
                raise _RowReplaced(row_id)
            if not row.chunk:
                break
            offset += len(row.chunk)
            yield bytes(row.chunk)

    def download(self, download_request: DownloadRequest) -> None:
        """Write the newest content of the location to the target path"""
        start = time.perf_counter()
        file_location = download_request.file_location
        target = Path(download_request.target)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.pool.connection() as conn:
                for _ in range(_DOWNLOAD_ATTEMPTS):
                    head = conn.execute(
                        self.dialect.select_meta(self.table_name), self._location_params(file_location)
                    ).first()
                    if head is None:
                        logger.warning(f"Download file [{file_location}] failed due to not exists!")
                        return
                    try:
                        replace_file(target, write_chunks(self._read_content(conn, head.id, head.length)))
                        break
                    except _RowReplaced:
                        logger.info(f"File [{file_location}] was overwritten during download, retry")
                else:
                    raise StorageOperationError(f"{file_location} kept changing during download")
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Download file [{file_location}] failed, cost: {time.perf_counter() - start:.3f}s, error: {e}")
            raise StorageOperationError(f"Failed to download {file_location}") from e

        logger.info(f"Download [{file_location}] to {target} successfully, cost: {time.perf_counter() - start:.3f}s")

    def fetch_file_meta(self, file_location: FileLocation) -> Optional[FileMeta]:
        """Read length, modification time and provenance without transferring the content"""
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    self.dialect.select_meta(self.table_name), self._location_params(file_location)
                ).first()
        except SQLAlchemyError as e:
            logger.error(f"Fetch file meta [{file_location}] failed: {e}")
            raise StorageOperationError(f"Failed to fetch meta of {file_location}") from e

        if row is None:
            return None

        mapping = row._mapping
        return FileMeta(
            length=mapping["length"],
            last_modified_time=mapping["gmt_modified"],
            meta_info=FileMetaInfo.from_json(mapping["meta"]),
        )

    def clean_expired_files(self, bucket: str, days: int) -> None:
        """Delete files of the bucket not modified in the last `days` days

        This is one unpaginated DELETE and may block for a long time on big
        tables; a retention job configured in the database itself is preferable.
        """
        if days < 0:
            logger.warning(f"Ignoring clean expired files of bucket {bucket} with negative days: {days}")
            return

        try:
            cutoff = datetime.now() - timedelta(days=days)
        except OverflowError:
            logger.warning(f"Nothing in bucket {bucket} can be older than {days} days, skip cleaning")
            return

        logger.info(f"Start to clean expired files of bucket {bucket}, target delete time: {cutoff:%Y-%m-%d %H:%M:%S}")
        try:
            with self.pool.transaction() as conn:
                result = conn.execute(
                    self.dialect.delete_expired(self.table_name), {"bucket": bucket, "cutoff": cutoff}
                )
                deleted = result.rowcount
            logger.info(f"Cleaned {deleted} expired files of bucket {bucket}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to clean expired files of bucket {bucket}: {e}")

    def close(self) -> None:
        self.pool.dispose()


class _RowReplaced(Exception):
    """The row being read was deleted by a concurrent overwrite"""
