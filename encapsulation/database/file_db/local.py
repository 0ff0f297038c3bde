from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Optional
import logging
import shutil

from .base import FileDB, StorageOperationError
from encapsulation.data_model.schema import (
    DownloadRequest,
    FileLocation,
    FileMeta,
    FileMetaInfo,
    StoreRequest,
)
from encapsulation.database.utils.file_utils import replace_file

if TYPE_CHECKING:
    from config.encapsulation.database.file_db.local_config import LocalDBConfig

logger = logging.getLogger(__name__)


class LocalDB(FileDB):
    """
    Local filesystem implementation of the file storage contract.

    Storage organization:
    - Content: <base_path>/<bucket>/files/<name>
    - Provenance: <base_path>/<bucket>/meta/<name>.json
    - Names may contain '/', mirrored as sub directories
    - Path safety: '..' and leading '/' are removed from buckets and names

    Files are written to a temporary sibling and renamed into place, so a
    reader never sees a half written file. Expiry uses the file modification
    time.

    Typical usage:
        >>> config = LocalDBConfig(base_path="./data/files")
        >>> storage = LocalDB(config)
        >>> storage.store(StoreRequest(FileLocation("logs", "1.log"), "/tmp/1.log"))
    """

    def __init__(self, config: "LocalDBConfig"):
        super().__init__(config)
        self.base_path = Path(config.base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local file storage initialized at {self.base_path.resolve()}")

    @staticmethod
    def _safe(part: str) -> str:
        return part.replace('..', '').lstrip('/')

    def _bucket_path(self, bucket: str) -> Path:
        return self.base_path / self._safe(bucket)

    def _file_path(self, file_location: FileLocation) -> Path:
        return self._bucket_path(file_location.bucket) / "files" / self._safe(file_location.name)

    def _meta_path(self, file_location: FileLocation) -> Path:
        return self._bucket_path(file_location.bucket) / "meta" / f"{self._safe(file_location.name)}.json"

    def store(self, store_request: StoreRequest) -> None:
        file_location = store_request.file_location
        local_file = Path(store_request.local_file)
        try:
            file_path = self._file_path(file_location)
            if file_path.exists():
                logger.info(f"Overwriting existing file: [{file_location}]")

            with open(local_file, "rb") as src:
                replace_file(file_path, lambda dst: shutil.copyfileobj(src, dst))
            meta_json = FileMetaInfo.for_local_file(local_file).to_json().encode("utf-8")
            replace_file(self._meta_path(file_location), lambda dst: dst.write(meta_json))

            logger.debug(f"Stored file [{file_location}] at {file_path}")
        except OSError as e:
            logger.error(f"Error storing file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to store {file_location}") from e

    def download(self, download_request: DownloadRequest) -> None:
        file_location = download_request.file_location
        target = Path(download_request.target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            file_path = self._file_path(file_location)
            if not file_path.is_file():
                logger.warning(f"Download file [{file_location}] failed due to not exists!")
                return

            with open(file_path, "rb") as src:
                replace_file(target, lambda dst: shutil.copyfileobj(src, dst))
            logger.debug(f"Downloaded file [{file_location}] to {target}")
        except OSError as e:
            logger.error(f"Error downloading file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to download {file_location}") from e

    def fetch_file_meta(self, file_location: FileLocation) -> Optional[FileMeta]:
        try:
            file_path = self._file_path(file_location)
            if not file_path.is_file():
                return None

            stat = file_path.stat()
            meta_path = self._meta_path(file_location)
            meta_info = FileMetaInfo()
            if meta_path.is_file():
                meta_info = FileMetaInfo.from_json(meta_path.read_text(encoding="utf-8"))

            return FileMeta(
                length=stat.st_size,
                last_modified_time=datetime.fromtimestamp(stat.st_mtime),
                meta_info=meta_info,
            )
        except OSError as e:
            logger.error(f"Error fetching meta of file [{file_location}]: {e}")
            raise StorageOperationError(f"Failed to fetch meta of {file_location}") from e

    def clean_expired_files(self, bucket: str, days: int) -> None:
        if days < 0:
            logger.warning(f"Ignoring clean expired files of bucket {bucket} with negative days: {days}")
            return

        files_root = self._bucket_path(bucket) / "files"
        meta_root = self._bucket_path(bucket) / "meta"
        try:
            cutoff = (datetime.now() - timedelta(days=days)).timestamp()
        except OverflowError:
            logger.warning(f"Nothing in bucket {bucket} can be older than {days} days, skip cleaning")
            return

        deleted = 0
        try:
            for file_path in list(files_root.rglob("*")):
                if not file_path.is_file() or file_path.stat().st_mtime >= cutoff:
                    continue
                relative = file_path.relative_to(files_root)
                file_path.unlink()
                meta_path = meta_root / f"{relative}.json"
                if meta_path.exists():
                    meta_path.unlink()
                deleted += 1
            logger.info(f"Cleaned {deleted} expired files of bucket {bucket}")
        except OSError as e:
            logger.error(f"Failed to clean expired files of bucket {bucket}: {e}")
