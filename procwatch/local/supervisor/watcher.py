import os
import time
import logging
from collections import namedtuple
from typing import TYPE_CHECKING, Callable, Dict, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

if TYPE_CHECKING:
    from procwatch.local.config import Options

log = logging.getLogger(__name__)

# An absolute path plus the watchdog event type that produced it.
FsEvent = namedtuple("FsEvent", ["path", "kind"])

# Opened/closed notifications never change file contents on their own.
RELEVANT_EVENT_TYPES = {"created", "deleted", "modified", "moved"}


class ChangeHandler(FileSystemEventHandler):
    """A watchdog event handler that turns file changes into `FsEvent`s."""

    def __init__(
        self,
        on_event: Callable[[FsEvent], None],
        debounce_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.on_event = on_event
        self.debounce_interval = debounce_interval
        self.clock = clock
        self.debounce_cache: Dict[str, float] = {}

    def on_any_event(self, event) -> None:
        """The main event handler method for watchdog, called on any file change."""
        if event.event_type not in RELEVANT_EVENT_TYPES:
            return

        # For moves, the destination is what now exists on disk.
        path = getattr(event, "dest_path", "") or event.src_path
        path = os.path.abspath(os.fsdecode(path))

        if not self._should_process_event(path):
            return
        self.on_event(FsEvent(path, event.event_type))

    def _should_process_event(self, path: str) -> bool:
        """Check if the event should be processed or skipped due to debouncing."""
        now = self.clock()
        cutoff = now - self.debounce_interval
        if self.debounce_cache.get(path, float("-inf")) > cutoff:
            return False
        # Entries past the interval can no longer suppress anything.
        self.debounce_cache = {p: t for p, t in self.debounce_cache.items() if t > cutoff}
        self.debounce_cache[path] = now
        return True


class Watcher:
    """Recursively watches the configured directories with a watchdog observer."""

    def __init__(self, options: "Options", on_event: Callable[[FsEvent], None]) -> None:
        self.options = options
        self.handler = ChangeHandler(on_event, options.WATCHDOG_DEBOUNCE_SECONDS)
        self.observer: Optional[Observer] = None

    def start(self) -> None:
        """
        Schedules every watch directory and starts the observer thread.

        :raises OSError: If a watch directory doesn't exist or can't be watched.
        """
        observer = Observer()
        report = self.options.VERBOSE and self.options.WATCH_DIRS != ["."]
        for path in self.options.WATCH_DIRS:
            path = os.path.abspath(path)
            if not os.path.isdir(path):
                raise FileNotFoundError(f"watch directory '{path}' does not exist")
            if report:
                log.info(f"watching {path!r}")
            observer.schedule(self.handler, path, recursive=True)
        observer.start()
        self.observer = observer

    def stop(self) -> None:
        """Stops the observer thread. Idempotent."""
        observer, self.observer = self.observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5)
