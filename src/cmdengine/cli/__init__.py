"""Command line interface."""

from cmdengine.cli.main import app, main

__all__ = ["app", "main"]
