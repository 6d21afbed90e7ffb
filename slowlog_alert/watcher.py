"""ChangeNotifier: watchdog event handler that wakes the tailer when the log changes."""

import logging
import os
import threading

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ChangeNotifier(FileSystemEventHandler):
    def __init__(self, path: str, changed: threading.Event):
        super().__init__()
        self._path = os.path.abspath(path)
        self._changed = changed
        self._observer = None

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(p and os.path.abspath(p) == self._path for p in paths)

    def on_modified(self, event):
        if self._matches(event):
            self._changed.set()

    def on_created(self, event):
        if self._matches(event):
            logger.debug("Watched file created: %s", self._path)
            self._changed.set()

    def on_moved(self, event):
        if self._matches(event):
            logger.debug("Watched file moved: %s", self._path)
            self._changed.set()

    def on_deleted(self, event):
        if self._matches(event):
            self._changed.set()

    def start(self):
        """Schedule an observer on the file's parent directory."""
        watch_dir = os.path.dirname(self._path)
        self._observer = Observer()
        self._observer.schedule(self, watch_dir, recursive=False)
        self._observer.daemon = True
        self._observer.start()
        logger.debug("Watching directory: %s", watch_dir)

    def stop(self):
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
