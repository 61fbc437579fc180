"""
Thread Log - Per-thread append-only diagnostic log files.

Each thread that calls log() lazily gets its own file in the temp directory:
1. First log() from a thread creates <prefix><random><suffix> and opens it
2. Every log() appends one timestamped line and flushes it
3. clear() closes the thread's file and detaches it from the registry

Files are never deleted here; cleaning up the temp directory is up to the
operator.
"""

import os
import sys
import logging
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from dotenv import load_dotenv

from log_utils import registry_lock as _registry_lock
from log_utils import format_line, format_timestamp

load_dotenv()

# Configuration from environment
TMPDIR_ENV = "THREAD_LOG_TMPDIR"
DEFAULT_PREFIX = os.getenv("THREAD_LOG_PREFIX", "openj9_ois_")
DEFAULT_SUFFIX = os.getenv("THREAD_LOG_SUFFIX", ".log")

logger = logging.getLogger(__name__)


class ThreadLogError(RuntimeError):
    """Base class for every failure raised by ThreadLogger."""


class ConfigurationError(ThreadLogError):
    """The temp directory setting is missing or empty."""


class CreationError(ThreadLogError):
    """The per-thread log file could not be created or opened."""


class WriteError(ThreadLogError):
    """Writing or flushing a log line failed."""


class CloseError(ThreadLogError):
    """Closing a thread's log file failed during clear()."""


def resolve_temp_dir(explicit: str = None) -> Path:
    """Resolve the directory new log files are created in.

    An explicit value wins, then $THREAD_LOG_TMPDIR, then the interpreter's
    temp directory. An empty value is a configuration error, never a fallback.
    """
    if explicit is not None:
        value = explicit
    else:
        value = os.getenv(TMPDIR_ENV)
        if value is None:
            value = tempfile.gettempdir()

    if not value:
        raise ConfigurationError(
            f"Failed to find tmp directory, set {TMPDIR_ENV} or pass temp_dir"
        )
    return Path(value)


class LogHandle:
    """One thread's open log file. Never reused once closed."""

    def __init__(self, path: Path, stream, thread_name: str):
        self.path = path
        self.thread_name = thread_name
        self._stream = stream

    @classmethod
    def create(
        cls, temp_dir: Path, prefix: str, suffix: str, announce=None,
    ) -> "LogHandle":
        """Create a uniquely named file in ``temp_dir`` and open it for appending."""
        out = announce if announce is not None else sys.stdout
        thread_name = threading.current_thread().name
        print(f"Temp directory determined to '{temp_dir}'", file=out)

        try:
            fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=str(temp_dir))
        except OSError as e:
            logger.warning(f"Could not create log file in {temp_dir}: {e}")
            raise CreationError(f"Failed to create log file in '{temp_dir}'") from e

        try:
            stream = os.fdopen(fd, "ab")
        except OSError as e:
            os.close(fd)
            logger.warning(f"Could not open log file {name}: {e}")
            raise CreationError(f"Failed to open log file '{name}'") from e

        print(f"Thread '{thread_name}' will write log to '{name}'", file=out)
        logger.debug(f"Opened log file {name} for thread {thread_name}")
        return cls(Path(name), stream, thread_name)

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def write_line(self, message) -> None:
        """Append one formatted line and flush it."""
        line = format_line(
            format_timestamp(), threading.current_thread().name, message
        )
        try:
            self._stream.write(line.encode("utf-8", errors="replace"))
            self._stream.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Write to {self.path.name} failed: {e}")
            raise WriteError(f"Logging a line failed: {message}") from e

    def close(self) -> None:
        """Flush and close the stream. The file stays on disk."""
        self._stream.close()
        logger.debug(f"Closed log file {self.path} for thread {self.thread_name}")


class ThreadLogger:
    """Registry of per-thread log handles keyed by the owning Thread object.

    Keys are Thread objects rather than idents: idents are recycled once a
    thread exits, so a new thread must never find a dead thread's handle.
    The dict itself is shared, so every access holds the registry lock.
    Handles are only ever touched by the thread that owns them.
    """

    def __init__(
        self,
        temp_dir: str = None,
        prefix: str = None,
        suffix: str = None,
        stream=None,
    ):
        self.temp_dir = temp_dir
        self.prefix = DEFAULT_PREFIX if prefix is None else prefix
        self.suffix = DEFAULT_SUFFIX if suffix is None else suffix
        self.stream = stream
        self._handles: dict[threading.Thread, LogHandle] = {}

    def __len__(self) -> int:
        with _registry_lock:
            return len(self._handles)

    def _get_or_create(self) -> LogHandle:
        """Return the current thread's handle, creating it on first use."""
        key = threading.current_thread()
        with _registry_lock:
            handle = self._handles.get(key)
        if handle is not None:
            return handle

        try:
            temp_dir = resolve_temp_dir(self.temp_dir)
        except ConfigurationError as e:
            logger.warning(str(e))
            raise

        # Only this thread ever inserts this key, so create outside the lock
        handle = LogHandle.create(temp_dir, self.prefix, self.suffix, self.stream)
        with _registry_lock:
            self._handles[key] = handle
        return handle

    def log(self, message: str | None) -> None:
        """Append ``message`` to the current thread's log file."""
        self._get_or_create().write_line(message)

    def clear(self) -> None:
        """Close the current thread's log file, if any, and forget it.

        The entry is removed even if closing fails; the failure is still raised.
        """
        key = threading.current_thread()
        with _registry_lock:
            handle = self._handles.get(key)
        if handle is None:
            return

        try:
            handle.close()
        except OSError as e:
            logger.warning(f"Closing {handle.path.name} failed: {e}")
            raise CloseError(f"Failed to close log file '{handle.path}'") from e
        finally:
            with _registry_lock:
                self._handles.pop(key, None)

    def current_path(self) -> Path | None:
        """Path of the current thread's open log file, or None."""
        with _registry_lock:
            handle = self._handles.get(threading.current_thread())
        return handle.path if handle is not None else None

    @contextmanager
    def session(self):
        """Yield this logger and always clear() the thread's file on exit."""
        try:
            yield self
        finally:
            self.clear()


# Process-wide default registry behind the module-level API
default_logger = ThreadLogger()


def log(message: str | None) -> None:
    """Log ``message`` to the calling thread's file via the default registry."""
    default_logger.log(message)


def clear() -> None:
    """Close and detach the calling thread's file in the default registry."""
    default_logger.clear()
