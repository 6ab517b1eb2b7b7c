"""Logging setup: stdlib logging rendered through rich."""
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# the Google client logs every discovery fetch at INFO
NOISY_LOGGERS = ("googleapiclient.discovery_cache", "httpx", "apscheduler.executors.default")


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
