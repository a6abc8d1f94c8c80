"""
BlockNotes - a local-first note-taking core.

Notes hold an ordered tree of typed content blocks (text, checklist items and
toggles). The package provides the block model and ordering engine, the
repositories that persist notes and labels with trash expiry and an offline
sync queue, and a full-text search index with highlighted results.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("blocknotes")
except PackageNotFoundError:
    __version__ = "0.3.0"
