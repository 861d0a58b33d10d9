"""Per-run execution log file."""

from __future__ import annotations

import logging
import re
from pathlib import Path

LOGGER = logging.getLogger(__name__)

LOG_FILE_NAME = "execution.log"

_FEATURE_FOLDER = re.compile(r"^(.*?spec/\d{3}-[\w-]+)")


def resolve_log_directory(plan_path: Path | str) -> Path:
    """Return ``spec/NNN-feature/logs`` for feature plans, else ``<dir>/.logs/<stem>``."""

    path = Path(plan_path)
    match = _FEATURE_FOLDER.match(path.as_posix())
    if match:
        return Path(match.group(1)) / "logs"
    return path.parent / ".logs" / path.stem


class RunLog:
    """Timestamped, append-only ``execution.log`` sink for one engine run.

    Messages go to the file and are mirrored on the module logger.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / LOG_FILE_NAME
        self._handler: logging.FileHandler | None = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s"))
        self._file_logger = logging.getLogger(f"{__name__}.{id(self):x}")
        self._file_logger.setLevel(logging.DEBUG)
        self._file_logger.propagate = False
        self._file_logger.addHandler(self._handler)

    @property
    def closed(self) -> bool:
        return self._handler is None

    def log(self, message: str) -> None:
        LOGGER.info(message)
        if self._handler is not None:
            self._file_logger.info(message)

    def error(self, message: str) -> None:
        LOGGER.error(message)
        if self._handler is not None:
            self._file_logger.error("[ERROR] %s", message)

    def close(self) -> None:
        """Flush and detach the file handler; safe to call more than once."""

        if self._handler is None:
            return
        self._file_logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None


__all__ = ["LOG_FILE_NAME", "RunLog", "resolve_log_directory"]
