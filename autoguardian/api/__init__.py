"""
HTTP API for AutoGuardian.
"""

from .app import create_app

__all__ = ["create_app"]
