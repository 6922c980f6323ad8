"""
HTTP function endpoint for AI Token Gate.
"""

from .app import create_app

__all__ = ["create_app"]
