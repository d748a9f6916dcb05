"""feedsync: feed item import and synchronization for Flask applications."""

__version__ = "0.1.0"
