"""Waymark — lifecycle engine for concepts, features and bugs with convention-based project discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("waymark")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from waymark.core import TimelineItem, WaymarkDB, WorkItem

__all__ = ["TimelineItem", "WaymarkDB", "WorkItem", "__version__"]
