"""
Centralized path management for cal-sync.

Resolves the working directory that holds the configuration file and logs.
``CAL_SYNC_HOME`` overrides the default ``~/.cal-sync`` location.
"""

import os
from pathlib import Path
from typing import Optional
import logging


class PathManager:
    """Manages cal-sync file paths."""

    # Directory names
    WORKING_DIR_NAME = ".cal-sync"
    HOME_ENV_VAR = "CAL_SYNC_HOME"

    # File names
    CONFIG_FILE = "config.json"
    LOG_DIR_NAME = "logs"

    def __init__(self, working_dir: Optional[Path] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._working_dir = Path(working_dir) if working_dir else None

    @property
    def working_dir(self) -> Path:
        """Directory holding configuration and logs."""
        if self._working_dir is None:
            override = os.environ.get(self.HOME_ENV_VAR)
            if override:
                self._working_dir = Path(override).expanduser()
                self.logger.debug(f"Using working directory from {self.HOME_ENV_VAR}: {self._working_dir}")
            else:
                self._working_dir = Path.home() / self.WORKING_DIR_NAME
        return self._working_dir

    @property
    def config_path(self) -> Path:
        return self.working_dir / self.CONFIG_FILE

    @property
    def log_dir(self) -> Path:
        return self.working_dir / self.LOG_DIR_NAME

    def ensure_directories(self) -> None:
        """Create the working and log directories if missing."""
        for directory in (self.working_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)


_path_manager: Optional[PathManager] = None


def get_path_manager() -> PathManager:
    """Get the process-wide path manager."""
    global _path_manager
    if _path_manager is None:
        _path_manager = PathManager()
    return _path_manager


def reset_path_manager() -> None:
    """Forget the cached path manager (used when CAL_SYNC_HOME changes)."""
    global _path_manager
    _path_manager = None
