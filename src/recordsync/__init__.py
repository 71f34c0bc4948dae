"""recordsync - Local-first record store kept in sync with a remote source."""

__version__ = "0.1.0"
