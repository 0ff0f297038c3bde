import enum
import json
import logging
import socket
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileStatus(enum.IntEnum):
    """Lifecycle flag of a stored file"""
    ENABLE = 1
    DISABLE = 2


@dataclass(frozen=True)
class FileLocation:
    """Identity of a stored file: a name unique within a bucket"""
    bucket: str
    name: str

    def __post_init__(self):
        if not self.bucket or not self.bucket.strip():
            raise ValueError("bucket cannot be empty")
        if not self.name or not self.name.strip():
            raise ValueError("name cannot be empty")

    def __str__(self) -> str:
        return f"{self.bucket}/{self.name}"


@dataclass
class StoreRequest:
    """Store the content of a local file at a location"""
    file_location: FileLocation
    local_file: PathLike


@dataclass
class DownloadRequest:
    """Download the content stored at a location into a local target path"""
    file_location: FileLocation
    target: PathLike


@dataclass
class FileMetaInfo:
    """
    Provenance of a stored file.

    Persisted as a JSON object. ``server`` and ``local_file_path`` are stored
    under the ``_server_`` and ``_local_file_path_`` keys; every other key is
    kept in ``extras`` so maps written by newer versions survive a round trip.
    """
    server: Optional[str] = None
    local_file_path: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    SERVER_KEY = "_server_"
    LOCAL_FILE_PATH_KEY = "_local_file_path_"

    @classmethod
    def for_local_file(cls, local_file: PathLike) -> 'FileMetaInfo':
        """Describe a file about to be stored from this host"""
        return cls(
            server=local_host(),
            local_file_path=str(Path(local_file).absolute()),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extras)
        if self.server is not None:
            data[self.SERVER_KEY] = self.server
        if self.local_file_path is not None:
            data[self.LOCAL_FILE_PATH_KEY] = self.local_file_path
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileMetaInfo':
        extras = dict(data)
        server = extras.pop(cls.SERVER_KEY, None)
        local_file_path = extras.pop(cls.LOCAL_FILE_PATH_KEY, None)
        return cls(server=server, local_file_path=local_file_path, extras=extras)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> 'FileMetaInfo':
        """Decode a stored map; missing or malformed input gives an empty instance"""
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed file meta {raw!r}: {e}")
            return cls()
        if not isinstance(data, dict):
            logger.warning(f"Ignoring file meta that is not a JSON object: {raw!r}")
            return cls()
        return cls.from_dict(data)

    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass
class FileMeta:
    """Metadata of a stored file, without its content"""
    length: int
    last_modified_time: Optional[datetime]
    meta_info: FileMetaInfo = field(default_factory=FileMetaInfo)


def local_host() -> str:
    """Best-effort address of this host, used as the origin of stored files"""
    hostname = socket.gethostname()
    try:
        return socket.gethostbyname(hostname)
    except OSError:
        return hostname
