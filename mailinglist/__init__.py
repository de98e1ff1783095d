"""Mailing-list subscriber registry (SQLite)."""

__version__ = "0.1.0"
