"""Configuration for Local file storage"""

from typing import ClassVar, Literal

from config.encapsulation.database.file_db.base_config import FileDBConfig, LOWEST_PRECEDENCE
from encapsulation.database.file_db.local import LocalDB


class LocalDBConfig(FileDBConfig):
    """Configuration for Local file storage - stores files on local filesystem

    Properties:
        DFS_LOCAL_BASE_PATH: root directory for stored files, activates this backend
    """
    # Discriminator for config type identification
    type: Literal["local_file_store"] = "local_file_store"

    backend_type: ClassVar[str] = "local"
    priority: ClassVar[int] = LOWEST_PRECEDENCE - 1
    condition_keys: ClassVar[tuple] = ("base_path",)
    property_keys: ClassVar[dict] = {"base_path": "base_path"}

    base_path: str = "./data/files"  # Base directory for file storage

    def build(self) -> LocalDB:
        return LocalDB(self)
