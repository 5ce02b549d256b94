"""
This module initializes the console package, exposing the interactive
command loop and the keypress reader it polls.
"""

from .process import CommandLoop, SupervisorState, EXIT_OK, EXIT_FATAL
from .handler import ConsoleKeyReader, show_menu

__all__ = ["CommandLoop", "SupervisorState", "ConsoleKeyReader", "show_menu", "EXIT_OK", "EXIT_FATAL"]
