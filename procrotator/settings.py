"""
This module contains the static settings for procrotator.
It defines config file names, defaults for the runtime configuration and the
timeouts used by the supervisor and the shutdown sequence.
Values marked as overridable can be changed through environment variables or
a `.env` file in the directory procrotator is launched from.
"""

import os
import signal
from dotenv import load_dotenv

DOTENV_FILE_NAME = ".env"


def load_environment(directory: str) -> bool:
    """
    Loads the `.env` file of a single directory into the environment.
    Parent directories are not searched and existing variables win.

    :param directory: The directory holding the `.env` file.
    :return bool: True if a file was found and loaded.
    """
    return load_dotenv(os.path.join(directory, DOTENV_FILE_NAME), override=False)


# Load environment variables from the .env file next to the invocation
load_environment(os.getcwd())

#* --- Identity ---
APP_NAME = "procrotator"
PROCESS_TITLE_TEMPLATE = "procrotator - {server_command}"

#* --- Config File Discovery ---
# Searched in this order inside the working directory; the first hit wins.
CONFIG_FILE_NAMES = (".procrotator.toml", "procrotator.toml")

#* --- Runtime Config Defaults ---
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_QUIT_SIGNAL = signal.SIGINT
SUPPORTED_QUIT_SIGNALS = {
    "SIGINT": signal.SIGINT,
    "SIGTERM": signal.SIGTERM,
}

#* --- Supervisor Settings (overridable) ---
MIN_RESTART_INTERVAL = float(os.getenv("PROCROTATOR_MIN_RESTART_INTERVAL", "5"))  # seconds
PREAMBLE_TIMEOUT = float(os.getenv("PROCROTATOR_PREAMBLE_TIMEOUT", "10"))         # seconds per command

#* --- Worker Settings (overridable) ---
# How long the coordinator waits for the relay and filter to acknowledge.
WORKER_ACK_TIMEOUT = float(os.getenv("PROCROTATOR_WORKER_ACK_TIMEOUT", "10"))
# How often the relay wakes up to check for a quit request and watcher errors.
WATCHER_POLL_INTERVAL = float(os.getenv("PROCROTATOR_WATCHER_POLL_INTERVAL", "0.2"))
# How often the main thread re-checks the signal trap while blocked.
SIGNAL_POLL_INTERVAL = 0.5
