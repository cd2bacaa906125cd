"""Organize local AI assistant sessions into active, archived and trashed."""

__version__ = "0.1.0"
