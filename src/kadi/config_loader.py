"""
Configuration Loader for KADI Docs

Reads config/settings.yaml: page geometry, fonts, table columns, stamp look,
QR encoding, the KADI contact line printed in every footer, currency words,
stamp overlay defaults and logging. The renderer never reads this module
directly; `kadi.settings.RenderSettings.from_config()` resolves it once.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
SETTINGS_ENV_VAR = "KADI_SETTINGS"


class Config:
    """
    Process-wide settings loaded once from YAML.

    Lookup order for the file: explicit `reload(path)`, then the
    KADI_SETTINGS environment variable, then the bundled
    config/settings.yaml. A missing file is not an error: the configuration
    is empty and every RenderSettings field keeps its built-in default.
    """

    _instance = None
    _config_data = None
    path: Optional[Path] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config_data is None:
            self._load_config()

    def _load_config(self, config_file: Optional[Path] = None):
        if config_file is None:
            override = os.environ.get(SETTINGS_ENV_VAR)
            config_file = Path(override) if override else DEFAULT_SETTINGS_PATH

        self.path = config_file
        if not config_file.exists():
            logger.warning(f"Settings file not found: {config_file}, rendering with built-in defaults")
            self._config_data = {}
            return

        with open(config_file, 'r', encoding='utf-8') as f:
            self._config_data = yaml.safe_load(f) or {}
        logger.debug(f"Loaded KADI settings from {config_file} (sections: {', '.join(self._config_data)})")

    def reload(self, config_file: Optional[Path] = None) -> None:
        """Re-read settings, e.g. for `kadi-render --settings other.yaml`."""
        self._load_config(Path(config_file) if config_file else None)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a setting by dot-separated path.

        Args:
            key_path: Path such as 'stamp.color' or 'table.columns.amount'
            default: Returned when any segment is missing

        Examples:
            >>> config = Config()
            >>> config.get('stamp.color')
            '#0B57D0'
            >>> config.get('contact.local_number')
            '79239027'
        """
        value = self._config_data

        try:
            for key in key_path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_section(self, section: str) -> Dict[str, Any]:
        """Top-level section such as 'logging' or 'overlay' ({} when absent)."""
        return self._config_data.get(section, {}) or {}

    @property
    def all(self) -> Dict[str, Any]:
        return self._config_data


# Shared instance used by the CLI and logging setup
config = Config()
