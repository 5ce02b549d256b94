"""
The Supervisor package.
Manages the lifecycle of the supervised game processes.

This package contains the central ProcessManager class and its helper modules,
which together handle building launch specs, starting, monitoring and
stopping the game clients.
"""
from .launch import LaunchSpec, build_launch_specs, log_pairs
from .process_utils import ManagedProcess
from .shutdown import TerminationError
from .supervisor import ProcessManager
from .window import WindowRenamer

__all__ = [
    'ProcessManager', 'ManagedProcess', 'LaunchSpec', 'TerminationError',
    'WindowRenamer', 'build_launch_specs', 'log_pairs',
]
