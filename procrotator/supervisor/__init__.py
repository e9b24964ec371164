"""
The Supervisor package.
Manages the lifecycle of the rotated server process.

This package contains the ProcessSupervisor state machine, the helpers that
launch, signal and reap OS processes, and the ShutdownCoordinator that wires
the workers together and tears them down in order.
"""
from .errors import (PreambleCommandError, ProcessLaunchError, ProcessSignalError,
                     ProcessStateError, ProcessWaitError, SupervisorError)
from .supervisor import ProcessState, ProcessSupervisor, RestartPolicy
from .shutdown import ShutdownCoordinator, SignalTrap, Worker

__all__ = [
    'PreambleCommandError',
    'ProcessLaunchError',
    'ProcessSignalError',
    'ProcessState',
    'ProcessStateError',
    'ProcessSupervisor',
    'ProcessWaitError',
    'RestartPolicy',
    'ShutdownCoordinator',
    'SignalTrap',
    'SupervisorError',
    'Worker',
]
