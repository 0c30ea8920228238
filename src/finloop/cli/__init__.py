"""finloop CLI package.

This package provides the command-line interface for claiming SimpleFIN
connections, running syncs against a local state file, and payment helpers.
"""

from .main import app, main

__all__ = ["app", "main"]
