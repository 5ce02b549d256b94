"""
Game orchestrator.

Launches a fixed set of game client instances, captures their output to raw
log files, keeps filtered copies of those logs up to date and lets the
operator restart or stop everything from a single-key console.
"""

__version__ = "0.1.0"
