from pathlib import Path
import sys
from typing import Optional

from loguru import logger


def configure_logging(level: str = "INFO", file_path: Optional[str] = None,
                      rotation: str = "10 MB", retention: str = "14 days") -> None:
    """Configure loguru logger for CLI and scheduled runs."""
    logger.remove()  # Remove default handler

    # Console (stderr)
    logger.add(sys.stderr, level=level)

    # File
    if file_path:
        path = Path(file_path).expanduser()
        logger.add(
            path,
            rotation=rotation,
            retention=retention,
            level=level,
            enqueue=True  # worker threads log concurrently
        )
