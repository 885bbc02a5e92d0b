from .har import HarLog, load_har, save_har
from .replayer import MatchKind, ReplayMatch, Replayer
from .sanitize import sanitize_har, sanitize_markup

__all__ = [
    "HarLog",
    "load_har",
    "save_har",
    "Replayer",
    "ReplayMatch",
    "MatchKind",
    "sanitize_har",
    "sanitize_markup",
]
