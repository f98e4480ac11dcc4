import datetime
import logging
import os
import sys
from collections import deque
from pathlib import Path
from typing import TextIO

from .constants import APP_NAME, DEFAULT_LOG_DIR, LOG_DIVIDER

logger = logging.getLogger(APP_NAME)


def default_log_path(repo_name: str) -> Path:
    """Returns the suggested log file for a repository."""
    return DEFAULT_LOG_DIR / f"{APP_NAME}-{repo_name}.log"


def has_divider(path: Path) -> bool:
    """Checks whether a file contains a divider line written by this tool."""
    with open(path, errors="replace") as f:
        return any(line.rstrip("\r\n") == LOG_DIVIDER for line in f)


def count_lines(path: Path) -> int:
    with open(path, errors="replace") as f:
        return sum(1 for _ in f)


def rotate_log(path: Path, max_lines: int) -> bool:
    """Truncates a log file to its last `max_lines` lines.

    Rotation only happens when the file already contains the divider marker,
    so an unrelated file passed by mistake is never truncated.

    Args:
        path (Path): The log file.
        max_lines (int): The line count to keep once the limit is exceeded.

    Returns:
        bool: True if the file was rewritten.
    """
    if not path.is_file():
        return False
    if not has_divider(path) or count_lines(path) <= max_lines:
        return False

    tail = tail_lines(path, max_lines)
    tmp_file = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_file, "w") as f:
            f.writelines(line + "\n" for line in tail)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, path)
    except OSError:
        if tmp_file.exists():
            tmp_file.unlink()
        raise

    logger.debug(f"Rotated {path} to its last {max_lines} lines.")
    return True


def tail_lines(path: Path, count: int = 100) -> list[str]:
    """Returns the last `count` lines of a file, without line endings."""
    if count <= 0:
        return []
    with open(path, errors="replace") as f:
        return [line.rstrip("\r\n") for line in deque(f, maxlen=count)]


def write_divider(stream: TextIO) -> None:
    """Writes the run divider and a timestamp, as `date` would print it."""
    now = datetime.datetime.now().astimezone()
    timestamp = now.strftime("%a %b %d %H:%M:%S %Z %Y")
    stream.write(f"{LOG_DIVIDER}\n{timestamp}\n")
    stream.flush()


def setup_logging(log_file: Path | None = None) -> None:
    """Configures the logging subsystem for a fetch run.

    Args:
        log_file (Path | None): If given, output is appended to this file
                                instead of stdout.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    handler: logging.Handler
    if log_file is not None:
        handler = logging.FileHandler(log_file, mode="a")
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
