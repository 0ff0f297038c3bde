from abc import abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict


class AbstractConfig(BaseModel):
    """
    Base class for all configs.

    A config is a validated, JSON-loadable description of a module. Subclasses
    declare a ``type`` literal used as the discriminator when several configs
    can appear in the same position, and implement ``build`` to create the
    module they describe.
    """

    model_config = ConfigDict(extra="forbid")

    @abstractmethod
    def build(self) -> Any:
        """Create the module described by this config"""
        pass
