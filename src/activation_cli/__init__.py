"""Command-line interface for the activation engine."""

from activation_engine import __version__

__all__ = ["__version__"]
