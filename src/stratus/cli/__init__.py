"""
CLI layer for Stratus.

Handles terminal transport only: argument parsing, coloured output and
table formatting. Deployment logic lives in :mod:`stratus.deploy`.

Entry point::

    stratus --help
"""

from stratus.cli.app import app

__all__ = ["app"]
