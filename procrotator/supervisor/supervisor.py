import enum
import time
import psutil
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from procrotator import settings
from procrotator.config import RuntimeConfig
from procrotator.handoff import Handoff
from procrotator.watcher.events import ChangeEvent
from procrotator.supervisor import process_utils
from procrotator.supervisor.errors import PreambleCommandError, ProcessStateError, SupervisorError

log = logging.getLogger(__name__)


class ProcessState(enum.Enum):
    NOT_STARTED = "NotStarted"
    STARTING = "Starting"
    STARTED = "Started"
    STOPPING = "Stopping"

    def __str__(self) -> str:
        return self.value


@dataclass
class RestartPolicy:
    """
    The debounce rule for restarts.
    `last_restart_at` is a monotonic timestamp; None means no restart has happened yet.
    """
    min_restart_interval: float
    last_restart_at: Optional[float] = None

    def elapsed(self, now: float) -> float:
        if self.last_restart_at is None:
            return float("inf")
        return now - self.last_restart_at

    def allows_restart(self, now: float) -> bool:
        return self.elapsed(now) > self.min_restart_interval


@dataclass
class SupervisorState:
    """Everything the supervisor mutates. Only touched while holding the supervisor lock."""
    policy: RestartPolicy
    process_state: ProcessState = ProcessState.NOT_STARTED
    process: Optional[psutil.Popen] = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class ProcessSupervisor:
    """
    Owns the lifecycle of the supervised server process.

    `start`, `stop` and `handle_change` all run under one lock, so at most one
    of them is in flight at a time. Failed operations leave the state machine
    where it was when the failure happened; see DESIGN.md for why there is no
    automatic recovery from `Starting` or `Stopping`.
    """

    def __init__(self, config: RuntimeConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.clock = clock
        self._state = SupervisorState(policy=RestartPolicy(config.min_restart_interval))
        # Set once the initial start attempt of `run` has finished.
        self.ready = threading.Event()

    #* --- Introspection ---
    @property
    def state(self) -> ProcessState:
        with self._state.lock:
            return self._state.process_state

    @property
    def process(self) -> Optional[psutil.Popen]:
        with self._state.lock:
            return self._state.process

    @property
    def last_restart_at(self) -> Optional[float]:
        with self._state.lock:
            return self._state.policy.last_restart_at

    #* --- Public Operations ---
    def start(self) -> None:
        """
        Runs the preamble commands and launches the server process.

        :raises ProcessStateError: If the process is not in the NotStarted state.
        :raises ProcessLaunchError: If the server command cannot be started (state stays Starting).
        """
        with self._state.lock:
            self._start()

    def stop(self) -> None:
        """
        Signals the server process group and waits for the process to exit.

        :raises ProcessStateError: If the process is not in the Started state.
        :raises SupervisorError: If signaling or waiting fails (state stays Stopping).
        """
        with self._state.lock:
            self._stop()

    def handle_change(self, event: ChangeEvent) -> bool:
        """
        Restarts the server in response to a file change, unless the last
        restart happened less than the minimum restart interval ago.

        The restart timestamp is refreshed after every attempt, successful or
        not, so a server that fails to launch is not retried in a tight loop.

        :param event: The change that triggered the restart.
        :return bool: True if a restart was attempted, False if the event was discarded.
        """
        with self._state.lock:
            policy = self._state.policy
            now = self.clock()
            elapsed = policy.elapsed(now)
            if not policy.allows_restart(now):
                log.debug(
                    f"Skipping restart for {event.path}. The minimum restart interval is "
                    f"{policy.min_restart_interval}s and the last restart was {elapsed:.3f}s ago."
                )
                return False

            log.info(f"Change detected in {event.path}. Restarting server process.")
            try:
                self._stop()
            except SupervisorError as e:
                log.error(f"Error stopping current child process: {e}")
            else:
                try:
                    self._start()
                except SupervisorError as e:
                    log.error(f"Error starting new child process: {e}")
            policy.last_restart_at = self.clock()
            return True

    def run(self, change_events: Handoff[ChangeEvent]) -> None:
        """
        The supervisor's message loop.

        Starts the server, restarts it for every change event until the
        handoff is closed, then stops the server if it is running.

        :param change_events: Input handoff fed by the event filter.
        """
        try:
            self.start()
        except SupervisorError as e:
            log.error(f"Error starting server process: {e}")
        finally:
            self.ready.set()

        for event in change_events:
            self.handle_change(event)

        log.debug("Change event handoff closed. Stopping server process.")
        with self._state.lock:
            if self._state.process_state is not ProcessState.STARTED:
                log.debug(f"No running server process to stop (state: {self._state.process_state}).")
                return
            try:
                self._stop()
            except SupervisorError as e:
                log.error(f"Error stopping child process: {e}")

    #* --- Unlocked Implementations (caller holds the lock) ---
    def _start(self) -> None:
        st = self._state
        if st.process_state is not ProcessState.NOT_STARTED:
            raise ProcessStateError(f"invalid state before start: {st.process_state}")
        st.process_state = ProcessState.STARTING

        for command in self.config.preamble_commands:
            try:
                process_utils.run_preamble_command(command, timeout=settings.PREAMBLE_TIMEOUT)
            except PreambleCommandError as e:
                log.error(f"Error running preamble command: {e}")

        st.process = process_utils.launch_server(self.config.server_command)
        st.policy.last_restart_at = self.clock()
        st.process_state = ProcessState.STARTED

    def _stop(self) -> None:
        st = self._state
        if st.process_state is not ProcessState.STARTED:
            raise ProcessStateError(f"unexpected process state: {st.process_state}")
        log.info("Stopping child process")
        st.process_state = ProcessState.STOPPING
        shutdown_started_at = self.clock()

        if st.process is None:
            raise SupervisorError("child process handle is missing")
        process_utils.signal_process_group(st.process, self.config.quit_signal)
        exit_status = process_utils.wait_for_exit(st.process)

        st.process = None
        st.process_state = ProcessState.NOT_STARTED
        log.debug(f"Child process quit in {self.clock() - shutdown_started_at:.3f}s (exit status {int(exit_status)})")
