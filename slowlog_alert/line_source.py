"""Line source that tails a slow-query log, following rotation and truncation."""

import logging
import os
import threading

from slowlog_alert.models import RawLine
from slowlog_alert.watcher import ChangeNotifier

logger = logging.getLogger(__name__)

MAX_LINES_PER_READ = 1000


class LogSourceError(Exception):
    """The line stream cannot continue; the supervisor restarts it."""


class LogOpenError(LogSourceError):
    pass


class LogReadError(LogSourceError):
    pass


class LineSource:
    """Yields RawLine values for a growing log file until shutdown is requested.

    Handles:
    - Start position (replay existing content or seek to end)
    - Log rotation (inode change detection), when follow_rotation is on
    - File truncation (seek back to start)
    - Partial trailing lines (held until their newline arrives)

    Opening failures raise LogOpenError immediately; retrying is the caller's job.
    """

    def __init__(
        self,
        path: str,
        shutdown_event: threading.Event,
        follow_rotation: bool = True,
        from_beginning: bool = False,
        poll_interval: float = 1.0,
        change_events: bool = False,
    ):
        self._path = path
        self._shutdown = shutdown_event
        self._follow_rotation = follow_rotation
        self._from_beginning = from_beginning
        self._poll_interval = poll_interval
        self._change_events = change_events
        self._wake = threading.Event()
        self._file = None
        self._inode = None
        self._partial = b""
        self._partial_offset = 0

    @property
    def path(self) -> str:
        return self._path

    def wake(self):
        """Interrupt a pending wait for new data."""
        self._wake.set()

    def lines(self):
        """Main tailing loop, a generator that ends when shutdown_event is set."""
        self._open_file(seek_end=not self._from_beginning)
        notifier = None
        try:
            if self._change_events:
                notifier = ChangeNotifier(self._path, self._wake)
                try:
                    notifier.start()
                except OSError as e:
                    logger.warning("Change events unavailable (%s), polling every %.1fs", e, self._poll_interval)
                    notifier = None

            while not self._shutdown.is_set():
                if self._follow_rotation and self._check_rotation():
                    yield from self._read_available(limit=None)
                    tail = self._take_partial()
                    if tail is not None:
                        yield tail
                    self._close_file()
                    self._open_file(seek_end=False)
                    continue

                if self._check_truncation():
                    continue

                got_data = False
                for line in self._read_available(limit=MAX_LINES_PER_READ):
                    got_data = True
                    yield line
                if not got_data:
                    self._wake.wait(self._poll_interval)
                    self._wake.clear()
        finally:
            if notifier:
                notifier.stop()
            self._close_file()

    def _open_file(self, seek_end: bool = False):
        """Open the file in binary mode and optionally seek to the end."""
        try:
            self._file = open(self._path, "rb")
            self._inode = os.fstat(self._file.fileno()).st_ino
            if seek_end:
                self._file.seek(0, os.SEEK_END)
        except OSError as e:
            self._close_file()
            raise LogOpenError(f"cannot open {self._path}: {e}") from e
        self._partial = b""
        logger.info("Opened %s (inode=%d) at offset %d", self._path, self._inode, self._file.tell())

    def _close_file(self):
        if self._file:
            try:
                self._file.close()
            except OSError:
                logger.debug("Error closing %s", self._path)
            self._file = None

    def _read_available(self, limit: int | None):
        """Yield complete lines up to EOF (or ``limit`` lines)."""
        count = 0
        while limit is None or count < limit:
            try:
                offset = self._file.tell()
                data = self._file.readline()
            except OSError as e:
                raise LogReadError(f"read failed on {self._path}: {e}") from e
            if not data:
                return
            if not data.endswith(b"\n"):
                # Writer is mid-line; keep the fragment until the rest arrives
                if not self._partial:
                    self._partial_offset = offset
                self._partial += data
                return
            if self._partial:
                data = self._partial + data
                offset = self._partial_offset
                self._partial = b""
            count += 1
            yield RawLine(_decode(data), offset)

    def _take_partial(self) -> RawLine | None:
        if not self._partial:
            return None
        line = RawLine(_decode(self._partial), self._partial_offset)
        self._partial = b""
        return line

    def _check_rotation(self) -> bool:
        """Detect log rotation by comparing inodes. Returns True if rotated."""
        try:
            current_inode = os.stat(self._path).st_ino
        except FileNotFoundError:
            # Renamed away, new file not created yet: keep reading the old handle
            return False
        except OSError as e:
            raise LogReadError(f"cannot stat {self._path}: {e}") from e

        if current_inode != self._inode:
            logger.info("File rotation detected for %s", self._path)
            return True
        return False

    def _check_truncation(self) -> bool:
        """Detect file truncation (e.g., > file). Returns True if truncated."""
        try:
            file_size = os.fstat(self._file.fileno()).st_size
            current_pos = self._file.tell()
        except OSError as e:
            raise LogReadError(f"cannot stat {self._path}: {e}") from e

        if current_pos > file_size:
            logger.info("File truncation detected for %s", self._path)
            self._file.seek(0)
            self._partial = b""
            return True
        return False


def _decode(data: bytes) -> str:
    return data.rstrip(b"\r\n").decode("utf-8", errors="replace")
