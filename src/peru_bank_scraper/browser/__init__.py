from .flatten import FlattenResult, flatten_markup, flatten_page, flatten_snapshot, snapshot_from_markup
from .stability import wait_stable

__all__ = [
    "FlattenResult",
    "flatten_markup",
    "flatten_page",
    "flatten_snapshot",
    "snapshot_from_markup",
    "wait_stable",
]
