"""
SDK for AI Token Gate.

Provides programmatic access to the token-gated generate endpoint.
"""

from .client import RemoteInvoker

__all__ = ["RemoteInvoker"]
