"""Utility modules for polycopy.

Sub-modules:
- logging: configure_logging() for structlog setup
- errors: venue error payload helpers (import directly from polycopy.utils.errors)
"""

from .logging import configure_logging

__all__ = ["configure_logging"]
