"""doorlog device storage.

Local-first: everything the device knows lives in one SQLite file.
"""

from .history import LogHistory
from .kv import KeyValueStore
from .queue import LocalQueueStore

__all__ = ["KeyValueStore", "LocalQueueStore", "LogHistory"]
