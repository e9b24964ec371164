import signal
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from procrotator import settings
from procrotator.config import RuntimeConfig
from procrotator.handoff import Handoff
from procrotator.supervisor.supervisor import ProcessSupervisor
from procrotator.watcher.events import ChangeEvent, RawNotification
from procrotator.watcher.filtering import EventFilter
from procrotator.watcher.relay import relay_notifications
from procrotator.watcher.watcher import FilesystemWatcher, new_filesystem_watcher

log = logging.getLogger(__name__)

SIGNAL_TRAP = "signal trap"
WATCHER_RELAY = "watcher relay"
EVENT_FILTER = "event filter"
PROCESS_SUPERVISOR = "process supervisor"


class Worker:
    """
    A named background thread that always acknowledges completion.

    Exceptions escaping the target are logged and kept on `error`; the
    acknowledgement callback runs whether the target returned or failed.
    """

    def __init__(self, name: str, target: Callable[[], None], on_complete: Callable[[str], None]):
        self.name = name
        self.target = target
        self.on_complete = on_complete
        self.error: Optional[BaseException] = None
        self.completed = threading.Event()
        self.thread = threading.Thread(target=self._run, name=f"procrotator-{name.replace(' ', '-')}", daemon=True)

    def start(self) -> None:
        self.thread.start()

    def _run(self) -> None:
        try:
            self.target()
        except Exception as e:
            self.error = e
            log.error(f"Worker '{self.name}' failed: {e}", exc_info=True)
        finally:
            self.on_complete(self.name)
            self.completed.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Waits for the acknowledgement. Returns False on timeout."""
        return self.completed.wait(timeout)


class SignalTrap:
    """
    Turns SIGINT/SIGTERM into a one-shot event the main thread can wait on.
    Signals arriving after the first one are ignored.
    """
    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self) -> None:
        self.fired = threading.Event()
        self.received: Optional[signal.Signals] = None
        self._previous_handlers: Dict[signal.Signals, object] = {}

    def install(self) -> None:
        """Installs the handlers. Python only allows this from the main thread."""
        if threading.current_thread() is not threading.main_thread():
            log.warning("Not running in the main thread; OS signals will not be trapped.")
            return
        for sig in self.SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self._handle)

    def _handle(self, signum, frame) -> None:
        # No logging in here: the handler may interrupt a thread holding a logging lock.
        if self.fired.is_set():
            return
        self.received = signal.Signals(signum)
        self.fired.set()

    def trigger(self) -> None:
        """Fires the trap without an OS signal."""
        self.fired.set()

    def wait(self, poll_interval: float = settings.SIGNAL_POLL_INTERVAL) -> None:
        # Waiting in short slices keeps the main thread responsive to signal handlers.
        while not self.fired.wait(poll_interval):
            pass

    def restore(self) -> None:
        """Puts back the handlers that were active before `install`."""
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()


class ShutdownCoordinator:
    """
    Starts the pipeline workers and tears them down in order.

    Startup: signal trap, supervisor (with its initial start), event filter,
    watcher relay. The trap goes first so a signal during the initial start is
    turned into an orderly shutdown instead of orphaning the server.

    Shutdown: relay, then filter, then supervisor, each stage waiting for the
    previous acknowledgement. A worker that fails or does not answer in time
    is logged and the sequence carries on; only the final supervisor stage
    waits without a timeout, because the server process must be allowed to
    exit.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        directories: Sequence[str],
        watcher_factory: Callable[[], FilesystemWatcher] = new_filesystem_watcher,
        supervisor: Optional[ProcessSupervisor] = None,
        signal_trap: Optional[SignalTrap] = None,
        ack_timeout: float = settings.WORKER_ACK_TIMEOUT,
    ):
        self.config = config
        self.directories = list(directories)
        self.watcher_factory = watcher_factory
        self.ack_timeout = ack_timeout

        self.notifications: Handoff[RawNotification] = Handoff("notifications")
        self.change_events: Handoff[ChangeEvent] = Handoff("change events")
        self.relay_quit = threading.Event()

        self.supervisor = supervisor or ProcessSupervisor(config)
        self.event_filter = EventFilter(config.include_file_regexes, config.exclude_file_regexes)
        self.signal_trap = signal_trap or SignalTrap()

        self.workers: Dict[str, Worker] = {}
        self.completed: List[str] = []
        self._completed_lock = threading.Lock()

    def _acknowledge(self, name: str) -> None:
        with self._completed_lock:
            self.completed.append(name)
        log.debug(f"Worker '{name}' completed.")

    def _start_worker(self, name: str, target: Callable[[], None]) -> Worker:
        worker = Worker(name, target, self._acknowledge)
        self.workers[name] = worker
        worker.start()
        return worker

    def start(self) -> None:
        """Starts every worker in dependency order."""
        self.signal_trap.install()

        self._start_worker(PROCESS_SUPERVISOR, lambda: self.supervisor.run(self.change_events))
        # The first launch must not race a change event. Short slices keep the
        # main thread responsive to the signal trap meanwhile.
        while not self.supervisor.ready.wait(settings.SIGNAL_POLL_INTERVAL):
            pass

        self._start_worker(EVENT_FILTER, lambda: self.event_filter.run(self.notifications, self.change_events))

        log.debug("Starting to watch directories")
        self._start_worker(WATCHER_RELAY, lambda: relay_notifications(
            self.watcher_factory, self.directories, self.notifications, self.relay_quit,
        ))
        log.debug("Directory watch has begun")

    def wait_for_signal(self) -> None:
        log.debug("Waiting for quit signal")
        self.signal_trap.wait()
        self._acknowledge(SIGNAL_TRAP)
        received = self.signal_trap.received
        log.info(f"Quit signal received ({received.name if received else 'requested'}). Shutting down.")

    def _await_worker(self, name: str, timeout: Optional[float]) -> None:
        worker = self.workers.get(name)
        if worker is None:
            log.warning(f"Worker '{name}' was never started.")
            return
        if not worker.wait(timeout):
            log.error(f"Worker '{name}' did not finish within {timeout}s. Continuing shutdown.")
        elif worker.error is not None:
            log.warning(f"Worker '{name}' finished with an error: {worker.error}")
        else:
            log.debug(f"Worker '{name}' finished cleanly.")

    def shutdown(self) -> None:
        """Runs the ordered shutdown sequence. Always runs to the end."""
        # Stage 1: the relay stops reading from the watcher.
        self.relay_quit.set()
        self._await_worker(WATCHER_RELAY, self.ack_timeout)
        log.debug("Directory watching processes completed")

        # Stage 2: with no producer left, the filter can be released.
        self.notifications.close()
        self._await_worker(EVENT_FILTER, self.ack_timeout)
        log.debug("Event filter done")

        # Stage 3: the supervisor stops the server and exits.
        self.change_events.close()
        self._await_worker(PROCESS_SUPERVISOR, None)
        log.debug("Child process manager done")

        self.signal_trap.restore()

    def run(self) -> None:
        """Starts the workers, blocks until a quit signal and shuts everything down."""
        try:
            self.start()
            self.wait_for_signal()
        finally:
            self.shutdown()
