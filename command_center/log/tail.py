import logging
from pathlib import Path
from collections import deque
from typing import List

log = logging.getLogger(__name__)


def tail_file(path: Path, lines: int) -> List[str]:
    """
    Returns the last lines of a text file.

    :param path: The file to read.
    :param lines: How many lines to return (at least one).
    :return: The lines without trailing newlines; empty if the file does not exist.
    """
    lines = max(1, lines)
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\r\n") for line in deque(f, maxlen=lines)]
    except FileNotFoundError:
        return []


def clamp_line_count(requested, default: int, maximum: int) -> int:
    """Parses a requested line count, falling back to default and capping it at maximum."""
    try:
        count = int(requested)
    except (TypeError, ValueError):
        count = default
    return min(max(count, 1), maximum)
