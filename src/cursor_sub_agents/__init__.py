"""Orchestrate Cursor sub-agents driven by deep links and synthetic keystrokes."""

__version__ = "0.1.0"

__all__ = ["__version__"]
