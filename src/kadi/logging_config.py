"""
Logging Configuration for KADI Docs

Configures the root logger for the kadi-render CLI:
- Console handler (stdout)
- Optional rotating file handler under paths.logs
- Per-library levels for the imaging and PDF stacks
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config_loader import config

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Levels for chatty third-party loggers
DEFAULT_LIBRARY_LEVELS = {
    'PIL': 'WARNING',
    'PyPDF2': 'ERROR',
}


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None
) -> None:
    """
    Configure application-wide logging from the `logging` section.

    Args:
        log_level: Override config log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log filename under paths.logs; forces the file handler on
    """
    logging_config = config.get_section('logging')
    handlers = logging_config.get('handlers', {}) or {}

    level = log_level or logging_config.get('level', 'INFO')
    formatter = logging.Formatter(
        logging_config.get('format', DEFAULT_FORMAT),
        datefmt=logging_config.get('date_format', '%Y-%m-%d %H:%M:%S')
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(level))
    root_logger.handlers.clear()

    console_config = handlers.get('console', {}) or {}
    console_enabled = console_config.get('enabled', True)
    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(_level(console_config.get('level', level)))
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    file_config = handlers.get('file', {}) or {}
    file_enabled = bool(log_file) or file_config.get('enabled', False)
    if file_enabled:
        logs_dir = Path(config.get('paths.logs', './logs'))
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / (log_file or file_config.get('filename', 'kadi.log')),
            maxBytes=file_config.get('max_bytes', 10485760),  # 10MB
            backupCount=file_config.get('backup_count', 5),
            encoding='utf-8'
        )
        file_handler.setLevel(_level(file_config.get('level', 'DEBUG')))
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    library_levels = dict(DEFAULT_LIBRARY_LEVELS)
    library_levels.update(logging_config.get('libraries', {}) or {})
    for name, library_level in library_levels.items():
        logging.getLogger(name).setLevel(_level(library_level))

    logging.getLogger(__name__).debug(
        f"Logging initialized (level={level}, console={console_enabled}, file={file_enabled})"
    )
