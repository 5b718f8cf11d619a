"""Follow a single log file across rotations, one whole line at a time."""
from .config import WatchConfig, load_config
from .tracker import BEGINNING, END, FileIdentity, StartFrom, identity_of, open_at, parse_start_from, reopen
from .watcher import Action, Line, LogWatcher, WatchState, follow_file

__version__ = "0.1.0"

__all__ = [
    "Action",
    "BEGINNING",
    "END",
    "FileIdentity",
    "Line",
    "LogWatcher",
    "StartFrom",
    "WatchConfig",
    "WatchState",
    "follow_file",
    "identity_of",
    "load_config",
    "open_at",
    "parse_start_from",
    "reopen",
]
