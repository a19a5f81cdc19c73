"""
File copy engine for Folder Mirror.

Copies a changed source file into the destination tree of its watch
definition, preserving the relative folder structure.  The writing
process often still holds the file when the notification arrives, so
each copy waits a configured settle delay once and then retries a few
times on transient I/O errors.  Renames delete the old destination file
and copy the file again under its new name.

Nothing in here raises to the caller: every failure is logged.
"""

import errno
import logging
import shutil
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from folder_mirror.config import WatchDefinition
from folder_mirror.debounce import Debouncer

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
RETRY_PAUSE_SECONDS = 0.5

# Windows ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION
_WIN_LOCK_ERRORS = {32, 33}
_TRANSIENT_ERRNOS = {errno.EBUSY, errno.EAGAIN, errno.ETXTBSY}


def is_transient(exc: BaseException) -> bool:
    """Return True if *exc* looks like a lock or a briefly unavailable path."""
    if not isinstance(exc, OSError):
        return False
    if getattr(exc, "winerror", None) in _WIN_LOCK_ERRORS:
        return True
    if exc.errno in _TRANSIENT_ERRNOS:
        return True
    if isinstance(
        exc,
        (PermissionError, IsADirectoryError, NotADirectoryError, shutil.SameFileError),
    ):
        return False
    return True


def copy_file(src: str, dst: str) -> str:
    """Copy *src* over the file *dst*; a directory at *dst* is refused."""
    if Path(dst).is_dir():
        raise IsADirectoryError(errno.EISDIR, "Destination is a directory", dst)
    return shutil.copy2(src, dst)


@dataclass
class CopyStats:
    """Aggregated copy statistics."""
    total_copied: int = 0
    total_failed: int = 0
    total_deleted: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_copy(self) -> None:
        with self._lock:
            self.total_copied += 1

    def record_failure(self) -> None:
        with self._lock:
            self.total_failed += 1

    def record_delete(self) -> None:
        with self._lock:
            self.total_deleted += 1

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        with self._lock:
            return (
                f"{self.total_copied} copied, {self.total_failed} failed, "
                f"{self.total_deleted} deleted"
            )


class FileCopier:
    """
    Mirrors single files from a watch definition's source tree to its destination.

    Parameters
    ----------
    debouncer : Debouncer
        Shared debounce table; refreshed after every successful copy.
    stats : CopyStats, optional
        Counters updated after each copy, failure and delete.
    copy_function : callable
        ``(src, dst)`` copy primitive, :func:`copy_file` by default.
    sleep : callable
        Used for the settle delay and retry pauses.
    max_attempts : int
        Copy attempts before giving up.
    retry_pause : float
        Seconds to wait after a transient failure.
    """

    def __init__(
        self,
        debouncer: Debouncer,
        stats: CopyStats | None = None,
        copy_function: Callable[[str, str], object] = copy_file,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = MAX_ATTEMPTS,
        retry_pause: float = RETRY_PAUSE_SECONDS,
    ):
        self._debouncer = debouncer
        self.stats = stats or CopyStats()
        self._copy_function = copy_function
        self._sleep = sleep
        self._max_attempts = max(1, max_attempts)
        self._retry_pause = retry_pause

    def copy(self, source_path: Path, definition: WatchDefinition) -> bool:
        """Copy *source_path* into the destination tree of *definition*.

        Returns True when the file landed at the destination.
        """
        try:
            return self._do_copy(Path(source_path), definition)
        except Exception:
            logger.exception("Unexpected error copying %s", source_path)
            self.stats.record_failure()
            return False

    def rename(
        self, old_path: Path, new_path: Path, definition: WatchDefinition
    ) -> bool:
        """Mirror a rename: drop the old destination file, then copy the new one."""
        self.delete_from_destination(Path(old_path), definition)
        return self.copy(Path(new_path), definition)

    def delete_from_destination(
        self, source_path: Path, definition: WatchDefinition
    ) -> bool:
        """Delete the destination counterpart of *source_path* if there is one.

        Returns True if a file was deleted.  Failures are logged only.
        """
        try:
            relative = definition.relative_path(source_path)
            dest = definition.destination_for(source_path)
            if not dest.is_file():
                return False
            dest.unlink()
            self.stats.record_delete()
            logger.info("Deleted old renamed file: %s", relative)
            return True
        except Exception as exc:
            logger.error("Error deleting old file %s: %s", source_path, exc)
            return False

    def _do_copy(self, source_path: Path, definition: WatchDefinition) -> bool:
        if not source_path.is_file():
            logger.debug("Source file no longer exists: %s", source_path)
            return False

        if not definition.accepts(source_path):
            logger.debug("Ignoring %s (extension not in filter)", source_path)
            return False

        relative = definition.relative_path(source_path)
        dest = definition.destination_for(source_path)
        dest.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Change detected: %s %s",
            source_path,
            datetime.now().strftime("%H:%M:%S"),
        )

        delayed = False
        attempt = 0
        for attempt in range(1, self._max_attempts + 1):
            try:
                # Re-checked on every attempt, so a file that reappears
                # between failed attempts is deleted again.
                if definition.remove_before_copy and dest.exists():
                    dest.unlink()

                if not delayed:
                    self._sleep(definition.settle_delay_seconds)
                    delayed = True

                self._copy_function(str(source_path), str(dest))
                logger.info("Copied: %s to %s", relative, definition.destination_root)
                self._debouncer.touch(
                    Debouncer.key_for(definition, source_path)
                )
                self.stats.record_copy()
                return True

            except Exception as exc:
                if not is_transient(exc):
                    logger.error("Error copying %s: %s", relative, exc)
                    break
                logger.warning(
                    "IO error while copying %s (attempt %d/%d): %s",
                    relative, attempt, self._max_attempts, exc,
                )
                if attempt < self._max_attempts:
                    self._sleep(self._retry_pause)

        logger.error("Failed to copy: %s after %d attempts.", relative, attempt)
        self.stats.record_failure()
        return False
