"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from hashget.exceptions import ConfigurationError
from hashget.models.config import CONFIG_FIELDS, ConfigField, ProcessConfig, build_config
from hashget.utils.config_validator import (
    validate_config_schema,
    validate_option_conflicts,
)

log = logging.getLogger(__name__)

DEFAULT_CACHE_DIR_NAME = "cache"


def _to_ini(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return ",".join(sorted(str(getattr(v, "value", v)) for v in value))
    return str(value)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        # Header lines and proxy URIs may contain '%'
        self._parser = configparser.ConfigParser(interpolation=None)

    @property
    def config_dir(self) -> Path:
        return self.config_file_path.parent

    @property
    def default_cache_folder(self) -> Path:
        return self.config_dir / DEFAULT_CACHE_DIR_NAME

    def load_config(self, cli_options: dict[str, Any] | None = None) -> ProcessConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: every field then keeps its default.

        Args:
            cli_options: A dictionary of options provided via the command line,
                keyed like the INI file. None values are ignored.

        Returns:
            A validated ProcessConfig object.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        config_values: dict[str, Any] = {}
        if self.config_file_path.is_file():
            self.read()
            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_values = self.get_config_as_dict()
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_values.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        is_valid, messages = validate_config_schema(config_values)
        if not is_valid:
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(messages)
            )

        is_valid, messages = validate_option_conflicts(config_values)
        if not is_valid:
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(messages)
            )
        for message in messages:
            log.warning(message)

        if config_values.get("cache") and not config_values.get("cache_folder"):
            config_values["cache_folder"] = str(self.default_cache_folder)

        try:
            return build_config(config_values, config_path=str(self.config_dir))
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def read(self) -> None:
        """Parses the INI file into the internal parser."""
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a new configuration file holding every field.

        Args:
            settings: Values to write instead of the field defaults.
        """
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)

        for field in CONFIG_FIELDS:
            if field.section != "DEFAULT" and not config.has_section(field.section):
                config.add_section(field.section)
            value = settings.get(field.key, field.default)
            config[field.section][field.key] = _to_ini(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads every known field from its INI section into a flat dictionary."""
        values = {}
        for field in CONFIG_FIELDS:
            if not self._parser.has_option(field.section, field.key):
                continue
            values[field.key] = self._read_field(field)
        return values

    def _read_field(self, field: ConfigField) -> Any:
        section = field.section
        try:
            if field.kind is bool:
                return self._parser.getboolean(section, field.key)
            if field.kind is int:
                return self._parser.getint(section, field.key)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value for '{field.key}' in [{section}]: {e}"
            ) from e
        raw = self._parser.get(section, field.key)
        if field.kind is list:
            return [item.strip() for item in raw.split(",") if item.strip()]
        if field.key == "header":
            # Multi-line INI values come back joined with '\n'
            return "\r\n".join(line for line in raw.splitlines() if line.strip())
        return raw

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        needs_saving = False

        for field in CONFIG_FIELDS:
            section = field.section
            if section != "DEFAULT" and not self._parser.has_section(section):
                self._parser.add_section(section)
            if self._parser.has_option(section, field.key):
                continue
            self._parser[section][field.key] = _to_ini(field.default)
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{field.key}' to [{section}] "
                f"with value '{self._parser[section][field.key]}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
