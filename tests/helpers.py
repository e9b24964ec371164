"""Test doubles and polling helpers shared by the test modules."""

import sys
import time
import threading
from types import SimpleNamespace
from typing import Any, Callable, List, Optional

import pytest

from procrotator.watcher.watcher import FilesystemWatcher

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX process groups and sleep(1)")


class FakeClock:
    """A manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWatcher(FilesystemWatcher):
    """In-memory raw watcher. Tests push notifications onto `events` directly."""

    def __init__(self, missing: Optional[List[str]] = None, close_error: Optional[Exception] = None):
        super().__init__()
        self.added: List[str] = []
        self.missing = set(missing or [])
        self.close_error = close_error
        self.closed = False
        self.health_checks = 0

    def add(self, path: str) -> None:
        if path in self.missing:
            raise FileNotFoundError(f"no such directory: {path}")
        self.added.append(path)

    def check_health(self) -> None:
        self.health_checks += 1

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeProcesses:
    """Stands in for the OS-facing helpers in process_utils and records every call."""

    def __init__(self):
        self.launched: List[SimpleNamespace] = []
        self.preambles: List[str] = []
        self.signals: List[Any] = []
        self.waited: List[int] = []
        self.launch_error: Optional[Exception] = None
        self.signal_error: Optional[Exception] = None
        self.preamble_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        # When set, signaling blocks until the event is set, holding the supervisor mid-restart.
        self.signal_gate: Optional[threading.Event] = None
        self._next_pid = 1000

    def run_preamble_command(self, command: str, timeout: float = 10) -> None:
        self.preambles.append(command)
        if self.preamble_error is not None:
            raise self.preamble_error

    def launch_server(self, command: str) -> SimpleNamespace:
        if self.launch_error is not None:
            raise self.launch_error
        self._next_pid += 1
        process = SimpleNamespace(pid=self._next_pid, command=command)
        self.launched.append(process)
        return process

    def signal_process_group(self, process, sig) -> None:
        if self.signal_gate is not None:
            self.signal_gate.wait(10)
        if self.signal_error is not None:
            raise self.signal_error
        self.signals.append((process.pid, sig))

    def wait_for_exit(self, process) -> int:
        if self.wait_error is not None:
            raise self.wait_error
        self.waited.append(process.pid)
        return 0


def wait_until(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Polls a condition until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def start_thread(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread
