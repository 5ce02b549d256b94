import logging
from pathlib import Path
from collections import namedtuple
from typing import Any, List, Optional

from orchestrator.local import app_globals
from orchestrator.log.pump import LogFilePair, pair_for

log = logging.getLogger(__name__)

# One supervised slot: what to run and where its raw output goes.
LaunchSpec = namedtuple(
    'LaunchSpec',
    ['name', 'executable', 'args', 'env', 'stdout_path', 'stderr_path', 'cwd', 'title'],
    defaults=(None, None),
)


def command_line(spec: LaunchSpec) -> List[str]:
    """Returns the full argv for a LaunchSpec."""
    return [str(spec.executable), *map(str, spec.args)]


def log_pairs(spec: LaunchSpec) -> List[LogFilePair]:
    """Returns the stdout and stderr LogFilePairs of a slot."""
    return [pair_for(spec.stdout_path), pair_for(spec.stderr_path)]


def _slot_args(config: Any, index: int) -> tuple:
    slot_args = config.GAME_SLOT_ARGS or {}
    return tuple(slot_args.get(index) or slot_args.get(str(index)) or ())


def build_launch_specs(config: Any = None, logs_dir: Optional[Path] = None) -> List[LaunchSpec]:
    """
    Builds one LaunchSpec per game slot from the configuration.

    Slot N is named `gameN` and writes to `gameN_raw.log` / `gameN_error_raw.log`
    in the logs directory.

    :param config: Settings object to read from. Defaults to app_globals.
    :param logs_dir: Overrides the configured logs directory.
    :return: The LaunchSpecs, in start order.
    """
    config = config or app_globals
    logs_dir = Path(logs_dir or config.LOGS_DIR)

    command = tuple(config.GAME_COMMAND)
    if not command:
        raise ValueError("GAME_COMMAND is empty. Nothing to launch.")
    executable, base_args = command[0], command[1:]

    specs = []
    for index in range(1, int(config.GAME_COUNT) + 1):
        name = f"game{index}"
        specs.append(LaunchSpec(
            name=name,
            executable=executable,
            args=(*base_args, *config.GAME_ARGS, *_slot_args(config, index)),
            env=dict(config.GAME_ENV),
            stdout_path=logs_dir / f"{name}_raw.log",
            stderr_path=logs_dir / f"{name}_error_raw.log",
            cwd=config.GAME_WORKING_DIR,
            title=config.WINDOW_TITLE_TEMPLATE.format(index=index, name=name),
        ))
    log.debug(f"Built {len(specs)} launch specs: {[s.name for s in specs]}")
    return specs
