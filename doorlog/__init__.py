"""
doorlog - door-to-door visit logging for unreliable connections.

Visits are recorded on the device first and reach the shared spreadsheet
whenever the network allows.
"""

from importlib.metadata import PackageNotFoundError, version

from .core import DoorLog, Notice

try:
    __version__ = version("doorlog")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["DoorLog", "Notice"]
