"""
Reads, upgrades and writes the INI file behind ``StorageSettings``.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from unit_storage.exceptions import ConfigurationError
from unit_storage.models.settings import StorageSettings

log = logging.getLogger(__name__)

DEFAULT_STORE_DIRNAME = "store"
SECTION = "DEFAULT"


def _to_ini(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class ConfigManager:
    """Owns one config file; every value lives in its DEFAULT section."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = Path(config_file_path)

    @property
    def default_storage_dir(self) -> str:
        return str(self.config_file_path.parent / DEFAULT_STORE_DIRNAME)

    def _default_values(self) -> dict[str, str]:
        defaults = StorageSettings(local_storage_dir=self.default_storage_dir)
        return {
            key: _to_ini(getattr(defaults, key))
            for key in sorted(StorageSettings.get_ini_keys())
        }

    def load_config(self, cli_options: dict[str, Any] | None = None) -> StorageSettings:
        """
        Builds validated settings from the file, then from non-None CLI overrides.

        Raises:
            ConfigurationError: The file is absent, unparsable, or yields
                settings that do not validate.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"No configuration at '{self.config_file_path}'. "
                "Create one with 'unit-storage init'."
            )

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Cannot parse '{self.config_file_path}': {e}") from e

        if self._add_missing_keys(parser):
            log.info("[yellow]Added new settings to the configuration file.[/yellow]")

        values = self._typed_values(parser[SECTION])
        values.update({k: v for k, v in (cli_options or {}).items() if v is not None})

        try:
            return StorageSettings(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Settings validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """Writes a fresh file: given values first, defaults for the rest."""
        parser = configparser.ConfigParser(interpolation=None)
        merged = self._default_values()
        merged.update(
            {k: _to_ini(v) for k, v in settings.items() if k in merged and v is not None}
        )
        parser[SECTION] = merged
        self._write(parser)

    def _write(self, parser: configparser.ConfigParser) -> None:
        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with self.config_file_path.open("w", encoding="utf-8") as fh:
                parser.write(fh)
        except OSError as e:
            raise ConfigurationError(f"Cannot write '{self.config_file_path}': {e}") from e

    @staticmethod
    def _typed_values(section: configparser.SectionProxy) -> dict[str, Any]:
        """Converts raw INI strings using the field types of the settings model."""
        values: dict[str, Any] = {}
        for key, field in StorageSettings.model_fields.items():
            if key not in section:
                continue
            annotation = field.annotation
            try:
                if annotation is bool:
                    values[key] = section.getboolean(key)
                elif annotation is int:
                    values[key] = section.getint(key)
                elif annotation == list[str]:
                    values[key] = [p.strip() for p in section[key].split(",") if p.strip()]
                else:
                    values[key] = section[key]
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}': {e}") from e
        return values

    def _add_missing_keys(self, parser: configparser.ConfigParser) -> bool:
        section = parser[SECTION]
        missing = {k: v for k, v in self._default_values().items() if k not in section}
        if not missing:
            return False
        for key, value in missing.items():
            log.debug(f"Config upgrade: {key} = {value}")
            section[key] = value
        try:
            self._write(parser)
        except ConfigurationError as e:
            log.error(f"Could not persist upgraded configuration: {e}")
            return False
        return True
