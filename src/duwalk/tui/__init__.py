"""Textual interface for duwalk."""

from duwalk.tui.app import ExplorerApp, run_tui

__all__ = ["ExplorerApp", "run_tui"]
