import os
import queue
import logging
from typing import List
from watchdog.observers import Observer
from watchdog.events import (EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED,
                             EVENT_TYPE_MOVED, FileSystemEvent, FileSystemEventHandler)

from procrotator.watcher.events import OpKind, RawNotification

log = logging.getLogger(__name__)


class FilesystemWatcher:
    """
    The raw watcher interface consumed by the relay.

    Notifications arrive on `events`, watcher-level problems on `errors`.
    Both are plain queues so the relay can poll them with a timeout.
    """

    def __init__(self) -> None:
        self.events: "queue.Queue[RawNotification]" = queue.Queue()
        self.errors: "queue.Queue[Exception]" = queue.Queue()

    def add(self, path: str) -> None:
        """Registers a single directory (non-recursively)."""
        raise NotImplementedError

    def check_health(self) -> None:
        """Reports background failures on `errors`. Called periodically by the relay."""

    def close(self) -> None:
        raise NotImplementedError


class NotificationCollector(FileSystemEventHandler):
    """A watchdog event handler that converts events into raw notifications."""

    def __init__(self, events: "queue.Queue[RawNotification]"):
        super().__init__()
        self.events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        """The main event handler method for watchdog, called on any file change."""
        for notification in to_raw_notifications(event):
            self.events.put(notification)


def to_raw_notifications(event: FileSystemEvent) -> List[RawNotification]:
    """
    Maps a watchdog event onto raw notifications.

    A move produces a RENAME for the old path and a CREATE for the new one.
    Event types without a counterpart (opened, closed) produce a notification
    with no operations, which the event filter drops.

    :param event: The watchdog event.
    :return list: The resulting notifications, in delivery order.
    """
    src_path = os.fsdecode(event.src_path)
    if event.event_type == EVENT_TYPE_MOVED:
        return [
            RawNotification(path=src_path, operations=frozenset({OpKind.RENAME})),
            RawNotification(path=os.fsdecode(event.dest_path), operations=frozenset({OpKind.CREATE})),
        ]

    op_map = {
        EVENT_TYPE_CREATED: OpKind.CREATE,
        EVENT_TYPE_DELETED: OpKind.REMOVE,
        EVENT_TYPE_MODIFIED: OpKind.WRITE,
    }
    op = op_map.get(event.event_type)
    # Directory modifications are a side effect of changes to their entries.
    if op is None or (event.is_directory and op is OpKind.WRITE):
        return [RawNotification(path=src_path, operations=frozenset())]
    return [RawNotification(path=src_path, operations=frozenset({op}))]


class WatchdogWatcher(FilesystemWatcher):
    """Raw watcher backed by a watchdog observer thread."""

    def __init__(self) -> None:
        super().__init__()
        self.handler = NotificationCollector(self.events)
        self.observer = Observer()
        self.observer.start()
        self._death_reported = False

    def add(self, path: str) -> None:
        # Raises OSError (e.g. FileNotFoundError) if the directory is gone.
        self.observer.schedule(self.handler, path, recursive=False)

    def check_health(self) -> None:
        if not self.observer.is_alive() and not self._death_reported:
            self._death_reported = True
            self.errors.put(RuntimeError("Watchdog observer thread has stopped unexpectedly."))

    def close(self) -> None:
        self.observer.stop()
        self.observer.join(timeout=5)
        if self.observer.is_alive():
            log.warning("Watchdog observer did not stop within 5 seconds.")


def get_directories_to_watch(root: str) -> List[str]:
    """
    Walks the root directory and returns every directory below it, root included.

    :param root: The directory to walk.
    :return list: Directory paths in walk order.
    :raises OSError: If a directory cannot be read.
    """
    def _raise(error: OSError) -> None:
        raise error

    result: List[str] = []
    for dirpath, _dirnames, _filenames in os.walk(root, onerror=_raise):
        result.append(dirpath)
    return result


def new_filesystem_watcher() -> FilesystemWatcher:
    """The default watcher factory used by the shutdown coordinator."""
    return WatchdogWatcher()
