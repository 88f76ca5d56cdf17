"""Command line interface for Termvault."""

from .main import app, main

__all__ = ["app", "main"]
