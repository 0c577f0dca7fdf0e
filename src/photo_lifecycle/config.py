"""Environment-driven defaults and logging setup."""

import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from loguru import logger


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]

DEFAULT_PHOTOS_ROOT = Path(os.getenv("PHOTOS_ROOT", "photos"))
DEFAULT_RENDITIONS_ROOT = Path(os.getenv("RENDITIONS_ROOT", str(DEFAULT_PHOTOS_ROOT)))
DEFAULT_PHOTOS_URL = os.getenv("PHOTOS_URL", "/photos")
DEFAULT_RENDITIONS_URL = os.getenv("RENDITIONS_URL", DEFAULT_PHOTOS_URL)
DEFAULT_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///photos.db")
DEFAULT_SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))
DEFAULT_EXIFTOOL_PATH = os.getenv("EXIFTOOL_PATH")
DEFAULT_RENDITION_WORKERS = int(os.getenv("RENDITION_WORKERS", "1"))
DEFAULT_JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "85"))

# Long edge in pixels for every rendition label, in generation order.
RENDITION_SIZES: dict[str, int] = {
    "thumb": 85,
    "album": 150,
    "large": 800,
}


_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {message} | {extra}"
)
_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> "
    "<level>{message}</level> <yellow>{extra}</yellow>"
)


def _log_file(log_folder: Path) -> Path:
    stamp = datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S")
    return log_folder / f"{stamp}-photo_lifecycle.log"


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "INFO",
    log_folder: Path = Path("logs"),
) -> None:
    """
    Replace Loguru's sinks with a rotating log file and a colored stderr sink.

    Either sink is skipped when its level is ``"OFF"``; with both off nothing is logged.
    """
    handlers: list[dict[str, Any]] = []
    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": _log_file(log_folder),
                "level": file_log_level,
                "format": _FILE_FORMAT,
                "rotation": "500 MB",
                "retention": "10 days",
                "compression": "zip",
            },
        )
    if console_log_level != "OFF":
        handlers.append(
            {
                "sink": sys.stderr,
                "level": console_log_level,
                "format": _CONSOLE_FORMAT,
                "colorize": True,
            },
        )
    logger.configure(handlers=handlers)
