# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Logging setup shared by the storage server and the client sync engine.

Handlers, formats and rotation are declared in ``etc/logging.conf``.  The
file handler's target is written there as ``%(log_file)s`` and resolved
here from ``settings.log_dir``; ``settings.log_level`` may override the
level of the ``vaultsync`` logger without editing the file.

Usage:
    from core.logger import logger
"""

import configparser
import logging
import logging.config
from pathlib import Path
from typing import Optional

from core.config import settings

LOGGER_NAME = "vaultsync"


def _read_config(conf_path: Path, log_file: Path) -> configparser.RawConfigParser:
    # Raw parser: the format strings contain %(asctime)s and friends, which
    # an interpolating parser would try to expand.
    text = conf_path.read_text(encoding="utf-8").replace("%(log_file)s", log_file.as_posix())
    parser = configparser.RawConfigParser()
    parser.read_string(text)
    return parser


def setup_logging(conf_path: Optional[Path] = None, log_dir: Optional[Path] = None) -> logging.Logger:
    """Apply the logging config once and return the application logger."""
    conf_path = Path(conf_path or settings.log_config)
    log_dir = Path(log_dir or settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.config.fileConfig(
        _read_config(conf_path, log_dir / "app.log"),
        disable_existing_loggers=False,
    )

    app_logger = logging.getLogger(LOGGER_NAME)
    if settings.log_level:
        app_logger.setLevel(settings.log_level.upper())
    return app_logger


logger = setup_logging()
