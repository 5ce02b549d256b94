"""
This module contains the configuration settings for the game orchestrator.
It defines paths, launch parameters for the supervised game clients, supervisor
timings and the list of noisy log lines removed from the filtered logs.
Values can be overridden through environment variables (or a .env file).
"""

import os
import shlex
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Core Paths ---
BASE_DIR = pathlib.Path(os.getenv("ORCH_BASE_DIR", os.getcwd())).resolve()
LOGS_DIR = pathlib.Path(os.getenv("ORCH_LOGS_DIR", str(BASE_DIR / "logs")))
OVERRIDES_JSON_PATH = BASE_DIR / "orchestrator_overrides.json"
ORCHESTRATOR_LOG_NAME = "orchestrator.log"
PROCESS_TITLE = "Game Orchestrator"

#* --- Game Launch Settings ---
GAME_COUNT = int(os.getenv("ORCH_GAME_COUNT", "2"))
GAME_COMMAND = tuple(shlex.split(os.getenv("ORCH_GAME_COMMAND", "cargo run --")))
GAME_ARGS = tuple(shlex.split(os.getenv("ORCH_GAME_ARGS", "--auto-matchmaking")))
# Extra arguments for individual slots, keyed by slot number
GAME_SLOT_ARGS = {1: ("--inputs-logging",)}
GAME_ENV = {"RUST_LOG": os.getenv("RUST_LOG", "bones_framework::networking=trace")}
GAME_WORKING_DIR = BASE_DIR

#* --- Supervisor Settings ---
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("ORCH_GRACE_PERIOD", "1.0"))  # seconds before force-killing
FORCE_KILL_TIMEOUT = float(os.getenv("ORCH_KILL_TIMEOUT", "3.0"))          # seconds to confirm a kill
RESTART_DELAY = float(os.getenv("ORCH_RESTART_DELAY", "1.0"))
DISCARD_RAW_LOGS_ON_RESTART = _env_flag("ORCH_DISCARD_LOGS_ON_RESTART", "False")

#* --- Console Settings ---
COMMAND_POLL_INTERVAL = float(os.getenv("ORCH_POLL_INTERVAL", "0.1"))
CLEAR_SCREEN = _env_flag("ORCH_CLEAR_SCREEN", "True")
VERBOSE_LOGGING = False

#* --- Window Renaming (xdotool) ---
WINDOW_RENAME_ENABLED = _env_flag("ORCH_WINDOW_RENAME", "True")
WINDOW_RENAME_DELAY = float(os.getenv("ORCH_WINDOW_RENAME_DELAY", "2.0"))
WINDOW_TITLE_TEMPLATE = "Game {index}"

#* --- Log Filtering ---
LOG_PUMP_INTERVAL = float(os.getenv("ORCH_LOG_PUMP_INTERVAL", "1.0"))
# Lines matching any of these (case-sensitive regex search) are dropped from
# the filtered logs. Note that the fourth entry is a character class, not an
# alternation of the two words; it is kept exactly as the game team wrote it.
LOG_FILTER_PATTERNS = (
    r"wgpu_hal::auxil::dxgi::exception",
    r"id3d12commandqueue::executecommandlists",
    r"d3d12_resource_state_render_target",
    r"d3d12_resource_state_[common|present]",
    r"invalid_subresource_state",
)

#* --- MODIFIABLE SETTINGS (can be overridden from the overrides JSON file) ---
MODIFIABLE_SETTINGS = {
    "GAME_COUNT", "GAME_ARGS",
    "GRACEFUL_SHUTDOWN_TIMEOUT", "FORCE_KILL_TIMEOUT", "RESTART_DELAY",
    "DISCARD_RAW_LOGS_ON_RESTART",
    "COMMAND_POLL_INTERVAL", "CLEAR_SCREEN",
    "WINDOW_RENAME_ENABLED", "WINDOW_RENAME_DELAY", "WINDOW_TITLE_TEMPLATE",
    "LOG_PUMP_INTERVAL", "LOG_FILTER_PATTERNS",
}
