"""
Local package for the game orchestrator.

This package provides the process-wide configuration through the app_globals
module, the process supervisor and the interactive console.
"""

from .global_config import app_globals

__all__ = ["app_globals"]
