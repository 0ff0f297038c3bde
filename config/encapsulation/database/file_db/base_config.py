"""Shared base for file storage backend configurations"""

from abc import abstractmethod
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from framework.config import AbstractConfig
from encapsulation.database.file_db.base import ConfigurationError, FileDB

# Lower priority numbers win, so backends order themselves below this bound
LOWEST_PRECEDENCE = 2 ** 31 - 1

_TRUE_VALUES = ("true", "1", "yes", "on")


class FileDBConfig(AbstractConfig):
    """Base config of a file storage backend that can be selected from process properties

    Properties are flat ``DFS_<BACKEND>_<KEY>`` entries, usually environment
    variables. A backend is a candidate when every key in ``condition_keys`` is
    present; among candidates the lowest ``priority`` wins.
    """

    backend_type: ClassVar[str]
    priority: ClassVar[int] = LOWEST_PRECEDENCE
    condition_keys: ClassVar[Tuple[str, ...]] = ()
    # Config field name -> property key, for settings read in from_properties
    property_keys: ClassVar[Dict[str, str]] = {}
    boolean_fields: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def property_name(cls, key: str) -> str:
        return f"DFS_{cls.backend_type}_{key}".upper()

    @classmethod
    def fetch_property(cls, properties: Mapping[str, str], key: str) -> Optional[str]:
        value = properties.get(cls.property_name(key))
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def is_configured(cls, properties: Mapping[str, str]) -> bool:
        """Whether the distinguishing settings of this backend are present"""
        return bool(cls.condition_keys) and all(
            cls.fetch_property(properties, key) is not None for key in cls.condition_keys
        )

    @classmethod
    def from_properties(cls, properties: Mapping[str, str]) -> "FileDBConfig":
        """Build the config from process properties, unset keys keep their defaults"""
        values: Dict[str, Any] = {}
        for field_name, key in cls.property_keys.items():
            value = cls.fetch_property(properties, key)
            if value is None:
                continue
            if field_name in cls.boolean_fields:
                values[field_name] = value.lower() in _TRUE_VALUES
            else:
                values[field_name] = value
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {cls.backend_type} storage settings: {e}") from e

    @abstractmethod
    def build(self) -> FileDB:
        pass
