"""Textual widgets for the ambient AI sessions view."""

from .sessions_panel import SessionsPanel, ToastRelay, render_rows

__all__ = ["SessionsPanel", "ToastRelay", "render_rows"]
