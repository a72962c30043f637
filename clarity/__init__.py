"""Clarity - local-first work tracking for humans and agents."""

__version__ = "0.4.0"
