"""
JSON persistence with atomic replacement and cooperative file locking.
"""

import contextlib
import errno
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

try:  # fcntl is only available on POSIX platforms
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - Windows
    fcntl = None  # type: ignore


LOCK_TIMEOUT = 8.0  # seconds
LOCK_POLL = 0.05  # seconds

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def locked(path: Path, exclusive: bool, timeout: float = LOCK_TIMEOUT) -> Iterator[None]:
    """Hold an advisory lock on ``<path>.lock`` for the duration of the block.

    Without fcntl the block runs unlocked.
    """
    if fcntl is None:
        yield
        return

    lock_path = path.parent / f"{path.name}.lock"
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
    deadline = time.monotonic() + timeout

    with open(lock_path, "a") as lock_file:
        while True:
            try:
                fcntl.flock(lock_file.fileno(), mode | fcntl.LOCK_NB)
                break
            except OSError as exc:  # pragma: no cover - depends on timing
                if exc.errno not in (errno.EACCES, errno.EAGAIN):
                    raise
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"Timed out waiting for lock on {path}") from exc
                time.sleep(LOCK_POLL)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def safe_read_json(file_path: str, default: Optional[Any] = None) -> Any:
    """
    Read JSON from ``file_path``.

    Returns ``default`` (an empty dict when not given) if the file is missing,
    unreadable, locked for too long or not valid JSON.
    """
    if default is None:
        default = {}

    path = Path(os.path.expanduser(file_path))
    if not path.exists():
        return default

    try:
        with locked(path, exclusive=False):
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
    except (TimeoutError, OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Failed to read {path}: {exc}")
        return default


def safe_write_json(file_path: str, data: Dict[str, Any], indent: int = 2) -> bool:
    """
    Write ``data`` as JSON, replacing the target atomically.

    Returns:
        True if successful, False otherwise
    """
    path = Path(os.path.expanduser(file_path))
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = None
    try:
        with locked(path, exclusive=True):
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=str(path.parent),
                prefix=".tmp_",
                suffix=".json",
                delete=False,
                encoding="utf-8",
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                json.dump(data, tmp_file, indent=indent, ensure_ascii=False, sort_keys=True)
            os.replace(str(tmp_path), str(path))
            tmp_path = None
        return True
    except (TimeoutError, OSError, TypeError, ValueError) as exc:
        logger.error(f"Error writing to {path}: {exc}")
        return False
    finally:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass
