"""
Terminal UI Module - Textual-based chat client
==============================================

This module provides a terminal chat with the site assistant using
Textual.
"""

from .app import ChatApp, run_tui

__all__ = [
    "ChatApp",
    "run_tui",
]
