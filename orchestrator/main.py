import sys
import logging
from typing import List, Optional

import setproctitle

from orchestrator.local import app_globals
from orchestrator.log import LogPump, setup_logging
from orchestrator.local.console import CommandLoop
from orchestrator.local.supervisor import ProcessManager, WindowRenamer, build_launch_specs, log_pairs

log = logging.getLogger("orchestrator")


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the game orchestrator."""
    args = list(sys.argv[1:] if argv is None else argv)
    if "--verbose" in args:
        app_globals.VERBOSE_LOGGING = True
        args.remove("--verbose")
    if args:
        print(f"Unknown arguments: {' '.join(args)}")
        print("Usage: game-orchestrator [--verbose]")
        return 2

    setproctitle.setproctitle(app_globals.PROCESS_TITLE)
    setup_logging(logging.DEBUG if app_globals.VERBOSE_LOGGING else logging.INFO)

    specs = build_launch_specs()
    renamer = WindowRenamer(app_globals.WINDOW_RENAME_DELAY) if app_globals.WINDOW_RENAME_ENABLED else None
    manager = ProcessManager(window_renamer=renamer)
    pump = LogPump(
        [pair for spec in specs for pair in log_pairs(spec)],
        app_globals.LOG_FILTER_PATTERNS,
        app_globals.LOG_PUMP_INTERVAL,
    )

    log.info("=" * 20 + " Orchestrator Starting " + "=" * 20)
    exit_code = CommandLoop(manager, pump, specs).run()
    log.info(f"Orchestrator exiting with code {exit_code}.")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
