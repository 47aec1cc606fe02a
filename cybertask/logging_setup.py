"""
Logging configuration.

Call `setup_logging()` once, early, from entry points (main.py, scripts).
Library modules only ever do `logger = logging.getLogger(__name__)`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ThirdPartyFilter(logging.Filter):
    """Keep cybertask logs, let other libraries through only at WARNING+"""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("cybertask") or record.name == "__main__":
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: Union[str, int] = logging.INFO,
                  log_dir: Optional[Union[str, Path]] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Console level, name ("DEBUG") or number
        log_dir: If given, also write everything (DEBUG+) to <log_dir>/cybertask.log
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    console.addFilter(_ThirdPartyFilter())
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_dir / "cybertask.log"), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
