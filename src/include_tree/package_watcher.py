# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File system watcher for extracted package directories.

Monitors one package directory and notifies invalidation callbacks with the
package id whenever a watched source file is created, modified, deleted or
moved, so the session never serves a tree built from outdated text.

Design Decisions:
- Watchdog library for cross-platform file watching
- Extension filter: only files that can carry include directives matter
- No debouncing: invalidation is idempotent, repeated events are cheap

Thread Safety:
- Callbacks run on the watchdog observer thread; TreeCache.invalidate is
  lock-protected, so it can be registered directly.
"""

import fnmatch
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Callback signature: (package_id: str) -> None
InvalidationCallback = Callable[[str], None]


class PackageWatcher:
    """Watches one package directory for source changes.

    Usage:
        watcher = PackageWatcher("pkg-1", "/tmp/extracted/pkg-1")
        watcher.register_invalidation_callback(cache.invalidate)
        watcher.start()
        # ...
        watcher.stop()
    """

    # Directories and files never relevant to a package's include graph
    ALWAYS_IGNORED = {
        ".git",
        "__MACOSX",
        ".DS_Store",
        "*.swp",
        "*~",
    }

    def __init__(
        self,
        package_id: str,
        package_root: str,
        watched_extensions: Iterable[str] = (".lua",),
    ):
        """Initialize PackageWatcher.

        Args:
            package_id: Identity passed to invalidation callbacks.
            package_root: Directory holding the extracted package.
            watched_extensions: Extensions (with dot) whose changes matter.
        """
        self.package_id = package_id
        self.package_root = Path(package_root).resolve()
        self.watched_extensions = {ext.lower() for ext in watched_extensions}

        self._invalidation_callbacks: List[InvalidationCallback] = []

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _PackageEventHandler(self)

        logger.info(f"PackageWatcher initialized for {package_id} at {self.package_root}")

    def should_ignore(self, file_path: str) -> bool:
        """Check if a path is in an always-ignored location or file pattern."""
        path = Path(file_path)
        for pattern in self.ALWAYS_IGNORED:
            if any(fnmatch.fnmatch(part, pattern) for part in path.parts):
                return True
        return False

    def is_watched_file(self, file_path: str) -> bool:
        """Check if a path has a watched extension."""
        return Path(file_path).suffix.lower() in self.watched_extensions

    def register_invalidation_callback(self, callback: InvalidationCallback) -> None:
        """Register a callback invoked with the package id on relevant changes.

        Args:
            callback: Function taking the package id. Exceptions it raises are
                logged and do not stop other callbacks.

        Example:
            watcher.register_invalidation_callback(cache.invalidate)
        """
        if callback not in self._invalidation_callbacks:
            self._invalidation_callbacks.append(callback)
            logger.debug(f"Registered invalidation callback: {callback}")

    def unregister_invalidation_callback(self, callback: InvalidationCallback) -> None:
        """Unregister a previously registered invalidation callback."""
        if callback in self._invalidation_callbacks:
            self._invalidation_callbacks.remove(callback)
            logger.debug(f"Unregistered invalidation callback: {callback}")

    def notify_change(self, file_path: str) -> bool:
        """Process a change to file_path and notify callbacks if relevant.

        Args:
            file_path: Absolute path of the changed file.

        Returns:
            True if callbacks were notified.
        """
        if self.should_ignore(file_path) or not self.is_watched_file(file_path):
            return False

        logger.debug(f"Package {self.package_id} changed: {file_path}")
        for callback in self._invalidation_callbacks:
            try:
                callback(self.package_id)
            except Exception as e:
                # One callback failure shouldn't prevent other callbacks from being notified
                logger.error(f"Invalidation callback failed for {self.package_id}: {e}")
        return True

    def start(self) -> None:
        """Start watching the package directory.

        Raises:
            RuntimeError: If watcher is already running
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("PackageWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.package_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version

        logger.info(f"PackageWatcher started, monitoring {self.package_root}")

    def stop(self) -> None:
        """Stop watching. Blocks until the observer thread terminates (with timeout)."""
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info(f"PackageWatcher stopped for {self.package_id}")

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class _PackageEventHandler(FileSystemEventHandler):
    """Internal event handler for watchdog; delegates to PackageWatcher."""

    def __init__(self, watcher: PackageWatcher):
        super().__init__()
        self.watcher = watcher

    def _handle_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.watcher.notify_change(str(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treated as delete (old path) + create (new path)."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return
        # Either side of a rename can add or remove an include target
        if not self.watcher.notify_change(str(event.src_path)):
            self.watcher.notify_change(str(event.dest_path))
