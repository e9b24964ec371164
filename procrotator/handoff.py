"""
Synchronous handoff between exactly one producer and one consumer thread.

A Handoff has no buffer: `send()` only returns once the consumer has taken
the item, so a slow consumer stalls its producer instead of letting events
pile up. Closing the handoff is the only way to stop a consumer; iteration
ends once the handoff is closed and the last pending item was taken.
"""
import logging
import threading
from typing import Generic, Iterator, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class HandoffClosed(Exception):
    """Raised when sending on, or receiving from, a closed handoff."""


class Handoff(Generic[T]):

    def __init__(self, name: str) -> None:
        self.name = name
        self._cond = threading.Condition()
        self._item: Optional[T] = None
        self._has_item = False
        self._closed = False
        # Incremented every time the consumer takes an item, so a producer can
        # tell its own item was taken even if another one was placed since.
        self._taken = 0

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, item: T) -> None:
        """
        Places an item and blocks until the consumer has received it.

        :param item: The item to hand over.
        :raises HandoffClosed: If the handoff is closed before the item was taken.
        """
        with self._cond:
            while self._has_item and not self._closed:
                self._cond.wait()
            if self._closed:
                raise HandoffClosed(f"send on closed handoff '{self.name}'")
            self._item = item
            self._has_item = True
            ticket = self._taken + 1
            self._cond.notify_all()
            while self._taken < ticket:
                if self._closed and self._has_item:
                    # Nobody will receive it any more.
                    self._item = None
                    self._has_item = False
                    self._cond.notify_all()
                    raise HandoffClosed(f"handoff '{self.name}' closed before item was received")
                self._cond.wait()

    def receive(self) -> T:
        """
        Blocks until an item is available and takes it.

        :return: The received item.
        :raises HandoffClosed: If the handoff is closed and nothing is pending.
        """
        with self._cond:
            while not self._has_item and not self._closed:
                self._cond.wait()
            if not self._has_item:
                raise HandoffClosed(f"handoff '{self.name}' is closed")
            item = self._item
            self._item = None
            self._has_item = False
            self._taken += 1
            self._cond.notify_all()
            return item

    def close(self) -> None:
        """Closes the handoff, waking every blocked sender and receiver."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        log.debug(f"Handoff '{self.name}' closed.")

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.receive()
            except HandoffClosed:
                return
