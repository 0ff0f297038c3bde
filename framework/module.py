from abc import ABC
from typing import Any


class AbstractModule(ABC):
    """Base class for all modules built from an AbstractConfig"""

    config: Any = None

    def __init__(self, config: Any):
        self.config = config
