class SupervisorError(RuntimeError):
    """Base class for every process lifecycle failure."""


class ProcessStateError(SupervisorError):
    """An operation was requested from a state that does not allow it."""


class PreambleCommandError(SupervisorError):
    """A preamble command could not be started, timed out or failed."""


class ProcessLaunchError(SupervisorError):
    """The server command could not be started."""


class ProcessSignalError(SupervisorError):
    """The quit signal could not be delivered."""


class ProcessWaitError(SupervisorError):
    """Waiting for the server process to exit failed."""
