"""Cursor settings sync: mirror editor settings against a git remote."""

__version__ = "1.2.0"
