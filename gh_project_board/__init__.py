"""Terminal board and table client for GitHub Projects (v2)."""

__version__ = "0.1.0"
