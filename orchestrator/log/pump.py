import logging
import threading
from pathlib import Path
from collections import namedtuple
from typing import Iterable, Optional, Tuple

from orchestrator.log.filter import PatternLike, compile_patterns, filter_text

log = logging.getLogger(__name__)

LogFilePair = namedtuple('LogFilePair', ['raw_path', 'filtered_path'])

RAW_SUFFIX = "_raw"


def filtered_path_for(raw_path: Path) -> Path:
    """Maps `<name>_raw.log` to `<name>.log` in the same directory."""
    raw_path = Path(raw_path)
    stem = raw_path.stem
    if stem.endswith(RAW_SUFFIX):
        stem = stem[:-len(RAW_SUFFIX)]
    else:
        stem = f"{stem}_filtered"
    return raw_path.with_name(stem + raw_path.suffix)


def pair_for(raw_path: Path) -> LogFilePair:
    """Builds the LogFilePair for a raw log path."""
    return LogFilePair(Path(raw_path), filtered_path_for(raw_path))


def discard_logs(pairs: Iterable[LogFilePair]) -> None:
    """Removes both the raw and the filtered file of every pair."""
    for pair in pairs:
        for path in (pair.raw_path, pair.filtered_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Could not remove stale log '{path}': {e}")


class LogPump:
    """
    Keeps the filtered copies of the raw game logs up to date.

    A background thread runs a filter pass every `interval` seconds; passes
    can also be requested on demand with `pump_once`. Passes never overlap.
    """

    def __init__(self, pairs: Iterable[LogFilePair], patterns: Iterable[PatternLike], interval: float = 1.0) -> None:
        """
        :param pairs: The raw/filtered file pairs to maintain, in processing order.
        :param patterns: The exclusion patterns applied to every raw log.
        :param interval: Seconds between two scheduled passes.
        """
        self.pairs: Tuple[LogFilePair, ...] = tuple(pairs)
        self.patterns = compile_patterns(patterns)
        self.interval = interval
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _filter_pair(self, pair: LogFilePair) -> bool:
        """
        Rewrites one filtered file from its raw file.

        :return: True if the filtered file was written, False if the raw file does not exist.
        :raises OSError: If the raw file cannot be read or the filtered file cannot be written.
        """
        try:
            # newline="" keeps lone carriage returns; line splitting is left to filter_text.
            with pair.raw_path.open("r", encoding="utf-8", errors="replace", newline="") as raw:
                content = raw.read()
        except FileNotFoundError:
            return False

        filtered = filter_text(content, self.patterns)
        temp_path = pair.filtered_path.with_name(pair.filtered_path.name + ".tmp")
        try:
            temp_path.write_text(filtered, encoding="utf-8")
            temp_path.replace(pair.filtered_path)
        finally:
            temp_path.unlink(missing_ok=True)
        return True

    def pump_once(self) -> int:
        """
        Runs one filter pass over every pair.

        A pair whose raw file is missing is skipped silently; a pair that fails
        with an I/O error is logged and retried on the next pass.

        :return: The number of filtered files written.
        """
        updated = 0
        with self._pass_lock:
            for pair in self.pairs:
                try:
                    if self._filter_pair(pair):
                        updated += 1
                except OSError as e:
                    log.warning(f"Failed to update filtered log '{pair.filtered_path}': {e}")
        log.debug(f"Log pass complete: {updated}/{len(self.pairs)} filtered logs written.")
        return updated

    def _periodic_pump(self) -> None:
        """Thread target. Runs a pass every interval until stopped."""
        while not self._stop_event.wait(self.interval):
            try:
                self.pump_once()
            except Exception as e:
                log.error(f"Unexpected error during scheduled log pass: {e}", exc_info=True)
        log.debug("Log pump thread has stopped.")

    def start(self) -> None:
        """Starts the background pump thread. Does nothing if it is already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._periodic_pump, daemon=True, name="LogPumpThread")
        self._thread.start()
        log.info(f"Log pump started for {len(self.pairs)} log files (every {self.interval}s).")

    def stop(self, flush: bool = True) -> None:
        """
        Stops the background thread and, by default, runs a final pass so the
        filtered logs include everything written up to now.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self.interval, 1.0) * 5)
            if self._thread.is_alive():
                log.warning("Log pump thread did not stop in time.")
            self._thread = None
        if flush:
            self.pump_once()
