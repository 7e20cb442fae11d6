"""
Web UI Module - FastAPI-based JSON API
======================================

This module provides the HTTP interface for Site Chatbot, including:
- Visitor chat sessions
- Chatbot rule administration
- Status reporting
"""

from .app import create_app, run_app
from .routes import router

__all__ = [
    "create_app",
    "run_app",
    "router",
]
