import queue
import logging
import threading
from typing import Callable, Sequence

from procrotator import settings
from procrotator.handoff import Handoff, HandoffClosed
from procrotator.watcher.events import RawNotification
from procrotator.watcher.watcher import FilesystemWatcher

log = logging.getLogger(__name__)


def _log_watcher_errors(watcher: FilesystemWatcher) -> None:
    """Drains and logs every pending watcher error. Watcher errors are never fatal."""
    while True:
        try:
            error = watcher.errors.get_nowait()
        except queue.Empty:
            return
        log.error(f"Filesystem watcher error: {error}")


def relay_notifications(
    watcher_factory: Callable[[], FilesystemWatcher],
    directories: Sequence[str],
    notifications: Handoff[RawNotification],
    quit_event: threading.Event,
    poll_interval: float = settings.WATCHER_POLL_INTERVAL,
) -> None:
    """
    The main loop for the raw-watcher relay.

    Creates a watcher, registers every directory and forwards notifications
    into the handoff until the quit event is set. The watcher is closed on
    the way out, whatever the reason for leaving.

    :param watcher_factory: Creates the filesystem watcher to read from.
    :param directories: The directories to register with the watcher.
    :param notifications: Output handoff consumed by the event filter.
    :param quit_event: Set by the coordinator to stop the relay.
    :param poll_interval: How long to wait for a notification before re-checking the quit event.
    """
    log.info("Watching directories:\n" + "\n".join(directories))
    watcher = watcher_factory()
    try:
        for directory in directories:
            try:
                watcher.add(directory)
            except OSError as e:
                log.error(f"Failed to watch directory '{directory}': {e}")

        while not quit_event.is_set():
            _log_watcher_errors(watcher)
            try:
                notification = watcher.events.get(timeout=poll_interval)
            except queue.Empty:
                watcher.check_health()
                continue
            try:
                notifications.send(notification)
            except HandoffClosed:
                log.warning("Notification handoff closed while the relay was still running. Exiting.")
                return
    finally:
        watcher.close()
        _log_watcher_errors(watcher)
        log.debug("Watcher relay stopped.")
