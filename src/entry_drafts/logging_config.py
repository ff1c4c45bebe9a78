from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


DATE_FORMAT = "[%Y-%m-%d %H:%M:%S]"


def configure_logging(verbose: bool = False, logger_name: Optional[str] = None) -> logging.Logger:
    """
    Configure process-wide logging and return a scoped logger.

    Records are rendered on stderr through Rich so CLI table output on stdout stays clean.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(console=Console(stderr=True), show_time=True, show_path=False)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt=DATE_FORMAT,
        handlers=[handler],
        force=True,
    )
    logger = logging.getLogger(logger_name or "entry_drafts")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    return logger
