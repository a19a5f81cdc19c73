"""File system watching for Folder Mirror.

Uses the watchdog library to monitor each configured source folder
recursively.  Every watch definition gets its own observer (a "watch
session"); events pass through the shared debouncer and are then handed
to the file copier on a background thread.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from folder_mirror.config import WatchDefinition
from folder_mirror.copier import CopyStats, FileCopier
from folder_mirror.debounce import Debouncer

logger = logging.getLogger(__name__)


def _event_path(raw: str | bytes) -> Path:
    return Path(os.fsdecode(raw))


class MirrorEventHandler(FileSystemEventHandler):
    """Watchdog handler that mirrors created, modified and moved files.

    Each event is handled inside its own exception boundary so a failing
    event is logged and never reaches the observer's dispatch loop.
    """

    def __init__(
        self,
        definition: WatchDefinition,
        copier: FileCopier,
        debouncer: Debouncer,
        background: bool = True,
    ):
        """Bind the handler to one watch definition."""
        super().__init__()
        self.definition = definition
        self._copier = copier
        self._debouncer = debouncer
        self._background = background

    def _is_debounced(self, path: Path) -> bool:
        return self._debouncer.should_suppress(
            Debouncer.key_for(self.definition, path)
        )

    def _run(self, name: str, work: Callable[[], Any]) -> None:
        """Run *work* on its own daemon thread (or inline when not in background mode)."""
        if not self._background:
            self._guarded(work)
            return
        threading.Thread(
            target=self._guarded,
            args=(work,),
            daemon=True,
            name=f"Mirror-{name}",
        ).start()

    def _guarded(self, work: Callable[[], Any]) -> None:
        try:
            work()
        except Exception:
            logger.exception(
                "Error handling change under %s", self.definition.source_root
            )

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        """Handle a new file creation event."""
        self._on_changed(event)

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        """Handle a file modification event."""
        self._on_changed(event)

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """Handle a rename inside the watched tree."""
        try:
            if event.is_directory:
                return
            old_path = _event_path(event.src_path)
            new_path = _event_path(event.dest_path)
            if self._is_debounced(new_path):
                return
            self._run(
                new_path.name,
                lambda: self._copier.rename(old_path, new_path, self.definition),
            )
        except Exception:
            logger.exception("Error in on_moved for %s", event.src_path)

    def _on_changed(self, event: FileCreatedEvent | FileModifiedEvent) -> None:
        try:
            if event.is_directory:
                return
            path = _event_path(event.src_path)
            if self._is_debounced(path):
                return
            self._run(path.name, lambda: self._copier.copy(path, self.definition))
        except Exception:
            logger.exception("Error in on_changed for %s", event.src_path)


class WatchSession:
    """One watchdog observer bound to one watch definition.

    Usage:
        session = WatchSession(definition, handler)
        session.start()
        ...
        session.stop()
    """

    def __init__(self, definition: WatchDefinition, handler: MirrorEventHandler):
        self.definition = definition
        self._handler = handler
        self._observer: Any | None = None
        self._error_reported = False

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching the definition's source folder recursively."""
        observer = Observer()
        observer.schedule(
            self._handler, str(self.definition.source_root), recursive=True
        )
        observer.start()
        self._observer = observer
        self._error_reported = False

    def stop(self) -> None:
        """Stop watching and release resources."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_running(self) -> bool:
        """Return whether the observer and all of its emitters are alive."""
        observer = self._observer
        if observer is None or not observer.is_alive():
            return False
        return all(emitter.is_alive() for emitter in observer.emitters)

    def check_health(self) -> bool:
        """Log a subscription error the first time the observer is found dead.

        The session is not restarted.  Returns the current health.
        """
        if self._observer is None:
            return False
        healthy = self.is_running
        if not healthy and not self._error_reported:
            self._error_reported = True
            logger.error(
                "Watcher error on %s: notifications stopped", self.definition.source_root
            )
        return healthy


class WatchCoordinator:
    """Owns one independent watch session per valid watch definition.

    All sessions share a single debouncer and copier.
    """

    def __init__(
        self,
        definitions: Iterable[WatchDefinition],
        debouncer: Debouncer | None = None,
        copier: FileCopier | None = None,
        background: bool = True,
    ):
        self.definitions = list(definitions)
        self.debouncer = debouncer or Debouncer()
        self.copier = copier or FileCopier(self.debouncer)
        self._background = background
        self._sessions: list[WatchSession] = []

    @property
    def sessions(self) -> list[WatchSession]:
        return list(self._sessions)

    @property
    def stats(self) -> CopyStats:
        return self.copier.stats

    def start(self) -> int:
        """Start a session for every valid definition; returns how many started."""
        for definition in self.definitions:
            if definition.missing_roots():
                logger.warning(
                    "Invalid paths in config: %s -> %s",
                    definition.source_root,
                    definition.destination_root,
                )
                continue

            handler = MirrorEventHandler(
                definition, self.copier, self.debouncer, background=self._background
            )
            session = WatchSession(definition, handler)
            try:
                session.start()
            except Exception:
                logger.exception("Could not watch %s", definition.source_root)
                continue
            self._sessions.append(session)
            logger.info("Watching folder: %s", definition.source_root)
        return len(self._sessions)

    def stop(self) -> None:
        """Stop every session."""
        for session in self._sessions:
            session.stop()
        self._sessions.clear()
        logger.info("Watchers stopped (%s).", self.stats.summary())

    def check_health(self) -> int:
        """Check every session; returns the number of unhealthy ones."""
        return sum(1 for s in self._sessions if not s.check_health())
