"""
Notesync - a single-user notes client core.

Keeps a working set of notes consistent across an in-memory view, a local
durable cache and an optional remote notes service reachable over HTTP.

This version uses synchronous operations with a background worker for
network calls.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notesync")
except PackageNotFoundError:
    __version__ = "0.3.0"
