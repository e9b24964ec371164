"""
The watcher package.
Delivers filesystem changes to the process supervisor.

It contains the watchdog-backed raw watcher, the relay that feeds its
notifications into the pipeline, and the event filter that decides which
notifications are worth a restart.
"""
from .events import REPORTABLE_OPS, ChangeEvent, OpKind, RawNotification
from .filtering import EventFilter
from .relay import relay_notifications
from .watcher import FilesystemWatcher, WatchdogWatcher, get_directories_to_watch, new_filesystem_watcher

__all__ = [
    'ChangeEvent',
    'EventFilter',
    'FilesystemWatcher',
    'OpKind',
    'RawNotification',
    'REPORTABLE_OPS',
    'WatchdogWatcher',
    'get_directories_to_watch',
    'new_filesystem_watcher',
    'relay_notifications',
]
