"""
claimbot - package claim and status-mark tracking bot for porting efforts

Contributors claim packages they are working on, annotate packages with
status marks ("waiting upstream", "failing", "ready", ...) and the bot keeps
a group channel informed about every state change.

Components:
    channels/: outbound notification engine (queue, dispatcher, throttle
               merger, deferred barrier), Telegram delivery and commands
    marks/:    claim/mark store, mark definitions and the mark engine
    api/:      HTTP trigger routes for CI callbacks
    runtime.py: wiring and lifecycle of the components

Usage:
    claimbot serve
    claimbot status
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_ROOT = Path(__file__).parent
ARGS_DIR = PROJECT_ROOT / "args"
DATA_DIR = PROJECT_ROOT / "db"
CONFIG_PATH = ARGS_DIR / "claimbot.yaml"

__version__ = "0.4.0"

__all__ = [
    "PROJECT_ROOT",
    "PACKAGE_ROOT",
    "ARGS_DIR",
    "DATA_DIR",
    "CONFIG_PATH",
    "__version__",
]
