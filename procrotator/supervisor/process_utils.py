import os
import sys
import shlex
import signal
import psutil
import logging
import subprocess
from typing import Any, Dict, List

from procrotator import settings
from procrotator.supervisor.errors import (PreambleCommandError, ProcessLaunchError,
                                           ProcessSignalError, ProcessWaitError)

log = logging.getLogger(__name__)


#* --- Command Parsing ---
def split_command(command: str) -> List[str]:
    """
    Splits a command string into an argument list.

    Tokenization follows shell rules (quotes group words). Environment
    variables are expanded in the arguments only, never in the command name.

    :param command: The command string, e.g. './server --port $PORT'.
    :return list: The argument list, command name first.
    :raises ValueError: If the command is empty or its quoting is unbalanced.
    """
    parts = shlex.split(command)
    if not parts:
        raise ValueError("empty command")
    name, args = parts[0], parts[1:]
    return [name] + [os.path.expandvars(a) for a in args]


#* --- Process Creation ---
def _get_popen_group_flags() -> Dict[str, Any]:
    """Returns platform-specific Popen arguments that put the child in its own process group."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def run_preamble_command(command: str, timeout: float = settings.PREAMBLE_TIMEOUT) -> None:
    """
    Runs a preamble command to completion, sharing our stdout/stderr.

    :param command: The command string.
    :param timeout: Seconds to wait before the command is killed.
    :raises PreambleCommandError: If the command cannot be started, times out or exits non-zero.
    """
    try:
        args = split_command(command)
    except ValueError as e:
        raise PreambleCommandError(f"parsing preamble command '{command}': {e}") from e

    log.debug(f"Running preamble command: {args}")
    try:
        subprocess.run(args, timeout=timeout, check=True, stdin=subprocess.DEVNULL)
    except subprocess.TimeoutExpired as e:
        raise PreambleCommandError(f"preamble command '{command}' timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        raise PreambleCommandError(f"preamble command '{command}' exited with status {e.returncode}") from e
    except OSError as e:
        raise PreambleCommandError(f"starting preamble command '{command}': {e}") from e


def launch_server(command: str) -> psutil.Popen:
    """
    Launches the server command in a new process group.
    The child inherits stdout/stderr so its output reaches the terminal untouched.

    :param command: The server command string.
    :return psutil.Popen: The handle of the running process.
    :raises ProcessLaunchError: If the command cannot be parsed or started.
    """
    try:
        args = split_command(command)
        process = psutil.Popen(args, **_get_popen_group_flags())
    except (ValueError, OSError) as e:
        raise ProcessLaunchError(f"starting server command '{command}': {e}") from e
    log.info(f"Server process started with PID: {process.pid}")
    return process


#* --- Process Shutdown ---
def describe_process_tree(process: psutil.Popen) -> List[int]:
    """Returns the PIDs of every descendant of the process, or an empty list if it is gone."""
    try:
        return [child.pid for child in process.children(recursive=True)]
    except psutil.Error:
        return []


def signal_process_group(process: psutil.Popen, sig: signal.Signals) -> None:
    """
    Sends a signal to the whole process group of the server process.

    :param process: The server process handle.
    :param sig: The signal to deliver.
    :raises ProcessSignalError: If the signal cannot be delivered.
    """
    descendants = describe_process_tree(process)
    if descendants:
        log.debug(f"Process group of PID {process.pid} includes descendants: {descendants}")
    try:
        if sys.platform == "win32":
            # Windows rejects anything but CTRL_C_EVENT, CTRL_BREAK_EVENT and SIGTERM with ValueError.
            process.send_signal(sig)
        else:
            # The child is a session leader, so its PID is also its process group ID.
            os.killpg(process.pid, sig)
    except (OSError, ValueError) as e:
        raise ProcessSignalError(f"sending {sig.name} to process group {process.pid}: {e}") from e


def wait_for_exit(process: psutil.Popen) -> int:
    """
    Blocks until the server process has exited and reaps it.

    :param process: The server process handle.
    :return int: The exit status (negative for death by signal).
    :raises ProcessWaitError: If waiting fails.
    """
    try:
        return process.wait()
    except (OSError, psutil.Error) as e:
        raise ProcessWaitError(f"waiting for process {process.pid} to finish: {e}") from e
