"""Command-line interface for fbc-chat."""

from .app import app

__all__ = ["app"]
