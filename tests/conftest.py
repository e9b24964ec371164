"""Shared pytest fixtures for procrotator."""

import re
import signal
from typing import Any, Callable

import pytest

from helpers import FakeClock, FakeProcesses
from procrotator.config import RuntimeConfig
from procrotator.log import LogLevel
from procrotator.supervisor import process_utils


@pytest.fixture
def make_config() -> Callable[..., RuntimeConfig]:
    """Factory for RuntimeConfig objects with sensible test defaults."""
    def _make(**overrides: Any) -> RuntimeConfig:
        values = dict(
            server_command="./some-app",
            include_file_regexes=(re.compile(r"\.foo$"),),
            exclude_file_regexes=(re.compile(r"ignore\.foo$"),),
            quit_signal=signal.SIGINT,
            working_directory="/tmp",
            log_level=LogLevel.INFO,
            min_restart_interval=5.0,
        )
        values.update(overrides)
        return RuntimeConfig(**values)
    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_processes(monkeypatch) -> FakeProcesses:
    """Replaces process launching, signaling and waiting with in-memory fakes."""
    fake = FakeProcesses()
    monkeypatch.setattr(process_utils, "run_preamble_command", fake.run_preamble_command)
    monkeypatch.setattr(process_utils, "launch_server", fake.launch_server)
    monkeypatch.setattr(process_utils, "signal_process_group", fake.signal_process_group)
    monkeypatch.setattr(process_utils, "wait_for_exit", fake.wait_for_exit)
    return fake
