"""
Core modules for AI Token Gate.

This package contains the token ledger, model gateway, interaction log
and the usage-gated invoker that ties them together.
"""
