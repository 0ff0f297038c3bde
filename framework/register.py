import json
import os
import re
import logging
from typing import Any, Dict, Optional

from pydantic import TypeAdapter

from framework.module import AbstractModule
from framework.singleton_decorator import singleton

logger = logging.getLogger(__name__)


@singleton
class Register:
    """
    This is used to register all kinds of applications from JSON config files.

    The config type may be a single AbstractConfig subclass or a discriminated
    union of several, e.g. ``Annotated[A | B, Field(discriminator="type")]``.
    """
    def __init__(self):
        self.registrations = {}

    def _substitute_env_vars(self, obj):
        """Recursively substitute environment variables in config data"""
        if isinstance(obj, dict):
            return {key: self._substitute_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [self._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            # Replace ${VAR_NAME} with environment variable values
            def replace_env_var(match):
                var_name = match.group(1)
                env_value = os.getenv(var_name)
                if env_value is None:
                    # Environment variable not set - log warning and return original
                    logger.warning(f"Environment variable '{var_name}' is not set, using placeholder '{match.group(0)}'")
                    return match.group(0)
                return env_value
            return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
        else:
            return obj

    def load_config(self, config_path: str, config_type: Any) -> Any:
        """Read, substitute and validate a JSON config file"""
        with open(config_path, "r") as f:
            config_data: Dict[str, Any] = json.loads(f.read())
        config_data = self._substitute_env_vars(config_data)
        return TypeAdapter(config_type).validate_python(config_data)

    def register(self, config_path: str, app_name: str, config_type: Any) -> AbstractModule:
        logger.info(f"Registering {app_name} with config path {config_path}")
        try:
            config = self.load_config(config_path, config_type)
            self.registrations[app_name] = config.build()
            logger.info(f"Successfully registered {app_name}")
        except Exception as e:
            logger.error(f"Error registering {app_name}, the config file is not valid\n {e}")
            raise
        return self.registrations[app_name]

    def get_object(self, app_name: str) -> Optional[AbstractModule]:
        return self.registrations.get(app_name)

    def unregister(self, app_name: str) -> Optional[AbstractModule]:
        return self.registrations.pop(app_name, None)
