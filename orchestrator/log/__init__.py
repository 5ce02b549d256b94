"""
Logging module for the orchestrator.
This module sets up the orchestrator's own logging and maintains the filtered
copies of the game logs.
"""

from .setup import setup_logging
from .filter import filter_lines, filter_text, split_lines, compile_patterns
from .pump import LogPump, LogFilePair, pair_for, filtered_path_for, discard_logs

__all__ = [
    "setup_logging",
    "filter_lines", "filter_text", "split_lines", "compile_patterns",
    "LogPump", "LogFilePair", "pair_for", "filtered_path_for", "discard_logs",
]
