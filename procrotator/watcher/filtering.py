import logging
from typing import Optional, Pattern, Sequence

from procrotator.handoff import Handoff, HandoffClosed
from procrotator.watcher.events import ChangeEvent, RawNotification

log = logging.getLogger(__name__)


class EventFilter:
    """
    Turns raw watcher notifications into change events.

    A notification survives when at least one of its operations is reportable,
    at least one include regex matches its path and no exclude regex does.
    The regexes are compiled when the runtime config is built and are assumed
    to be valid here.
    """

    def __init__(self, include_regexes: Sequence[Pattern], exclude_regexes: Sequence[Pattern]):
        self.include_regexes = tuple(include_regexes)
        self.exclude_regexes = tuple(exclude_regexes)

    def is_included(self, path: str) -> bool:
        return any(r.search(path) for r in self.include_regexes)

    def is_excluded(self, path: str) -> bool:
        return any(r.search(path) for r in self.exclude_regexes)

    def classify(self, notification: RawNotification) -> Optional[ChangeEvent]:
        """
        Classifies a single raw notification.

        :param notification: The notification received from the watcher.
        :return: A ChangeEvent for the path, or None if the notification is dropped.
        """
        path = notification.path
        if not notification.is_reportable():
            ops = ", ".join(sorted(op.value for op in notification.operations)) or "none"
            log.debug(f"Ignoring non-reportable operations ({ops}) on {path}")
            return None

        if not self.is_included(path):
            return None
        log.debug(f"File is included: {path}")

        if self.is_excluded(path):
            log.debug(f"File is excluded: {path}")
            return None

        return ChangeEvent(path=path)

    def run(self, notifications: Handoff[RawNotification], change_events: Handoff[ChangeEvent]) -> None:
        """
        Filters notifications until the notification handoff is closed.

        :param notifications: Input handoff fed by the watcher relay.
        :param change_events: Output handoff consumed by the process supervisor.
        """
        log.debug("Event filter started.")
        for notification in notifications:
            event = self.classify(notification)
            if event is None:
                continue
            try:
                change_events.send(event)
            except HandoffClosed:
                log.warning(f"Change event for {event.path} dropped, the supervisor is no longer listening.")
                break
        log.debug("Event filter input closed. Exiting.")
