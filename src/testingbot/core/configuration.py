"""Parse configuration options and set them to be used throughout the TestingBot CLI."""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from testingbot.core.exceptions import ConfigError


DEFAULTS_FILE_NAME = "defaults.yaml"
DEFAULTS_FILE = Path(__file__).parent / DEFAULTS_FILE_NAME
ENV_VAR_PREFIX = "TESTINGBOT__"


class TestingBotConfig:
    """Default config setup using YAML."""

    __test__ = False

    def __init__(self, filepath: str = "", dict_config: Optional[Dict] = None) -> None:
        """TestingBot config class.

        Args:
            filepath: where to read defaults from.
            dict_config: dictionary of values to override

        Config file priority:
            1. user specified file passed in
            2. environment variable TESTINGBOT__CONFIG_FILE
            3. default config file shipped with the package
        """
        if filepath:
            self._filepath: Union[str, Path] = filepath
        else:
            self._filepath = os.getenv("TESTINGBOT__CONFIG_FILE", "")

        if not self._filepath:
            self._filepath = DEFAULTS_FILE

        with open(self._filepath, "r", encoding="utf-8") as f:
            self._config = yaml.safe_load(f) or {}

        self._dict_config = dict_config

    def _get_env_var_name(self, section: str, key: str) -> str:
        return f"{ENV_VAR_PREFIX}{section.upper()}__{key.upper()}"

    def _get_environment_variable(self, section: str, key: str) -> Optional[str]:
        # must have format TESTINGBOT__{SECTION}__{KEY} (note double underscore)
        env_var = self._get_env_var_name(section, key)
        return os.environ.get(env_var)

    def _interpolate_env_vars(self, value: Any) -> Any:
        if isinstance(value, str):
            return os.path.expandvars(value)
        return value

    def _get_yaml_variable(self, section: str, key: str) -> Any:
        return self._config.get(section, {}).get(key)

    def _get_dict_config_variable(self, section: str, key: str) -> Any:
        if self._dict_config:
            return self._dict_config.get(section, {}).get(key)
        return None

    def get(self, section: str, key: str) -> Any:
        """Get the configuration value for the section and key. Raise if key not found.

        The order of precedence: dict_config > Environment Variable > YAML File.

        Raises: ConfigError
        """
        val = self._get_dict_config_variable(section, key)
        if val is not None:
            return self._interpolate_env_vars(val)

        val = self._get_environment_variable(section, key)
        if val is not None:
            return val

        val = self._get_yaml_variable(section, key)
        if val is not None:
            return self._interpolate_env_vars(val)

        raise ConfigError(
            f'"{key}" key not found in "{section}" section of {self._filepath}. Fallback '
            f'option using environment var "{self._get_env_var_name(section, key)}" was not '
            "found."
        )

    def get_section(self, section: str) -> Dict[str, Any]:
        """Returns a dictionary of all key-value pairs in the given section."""
        section_dict = dict(self._config.get(section, {}))

        if self._dict_config:
            section_dict.update(self._dict_config.get(section, {}))

        prefix = f"{ENV_VAR_PREFIX}{section.upper()}__"
        for env_key in os.environ.keys():
            if env_key.startswith(prefix):
                key = env_key[len(prefix) :].lower()
                section_dict[key] = os.environ[env_key]

        return section_dict

    def get_boolean(self, section: str, key: str) -> bool:
        """Get the configuration value for the section and key as bool."""
        val = str(self.get(section, key)).lower().strip()
        if val in ("t", "true", "1", "yes"):
            return True
        elif val in ("f", "false", "0", "no"):
            return False
        else:
            raise ConfigError(
                f'Failed to convert value to bool. Please check "{key}" key in "{section}" '
                f'section or environment var "{self._get_env_var_name(section, key)}". '
                f'Current value: "{val}".'
            )

    def get_int(self, section: str, key: str) -> int:
        """Get the configuration value for the section and key as int."""
        val = self.get(section, key)
        try:
            return int(val)
        except ValueError as exc:
            raise ConfigError(
                f'Failed to convert value to int. Please check "{key}" key in "{section}" '
                f'section or environment var "{self._get_env_var_name(section, key)}". '
                f'Current value: "{val}".'
            ) from exc

    def get_float(self, section: str, key: str) -> float:
        """Get the configuration value for the section/key as float."""
        val = self.get(section, key)
        try:
            return float(val)
        except ValueError as exc:
            raise ConfigError(
                f'Failed to convert value to float. Please check "{key}" key in "{section}" '
                f'section or environment var "{self._get_env_var_name(section, key)}". '
                f'Current value: "{val}".'
            ) from exc
