"""
Providers module for the couch backup system.

This module provides the base provider class for per-dataset operations.
"""

from .base_provider import BaseProvider

__all__ = [
    "BaseProvider",
]
